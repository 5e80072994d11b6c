"""CloudWatch CPU alarms driving the scaling policies."""
import logging
from typing import List, Optional

from vm_scaling.aws.clients import get_cloudwatch_client
from vm_scaling.config.lab_config import AutoScalingConfig
from vm_scaling.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AlarmManager:
    """Put and delete the high and low CPU alarms of an auto-scaling group."""

    def __init__(self, settings: Optional[Settings] = None, cloudwatch_client=None):
        self.settings = settings if settings is not None else get_settings()
        self.cloudwatch_client = (cloudwatch_client if cloudwatch_client is not None
                                  else get_cloudwatch_client())

    def _put_cpu_alarm(self, config: AutoScalingConfig, alarm_name: str,
                       comparison: str, threshold: float, evaluation_periods: int,
                       policy_arn: str) -> str:
        self.cloudwatch_client.put_metric_alarm(
            AlarmName=alarm_name,
            AlarmDescription=f"CPU utilization of {config.auto_scaling_group_name}",
            Namespace='AWS/EC2',
            MetricName='CPUUtilization',
            Statistic='Average',
            Period=config.alarm_period,
            EvaluationPeriods=evaluation_periods,
            Threshold=threshold,
            ComparisonOperator=comparison,
            Unit='Percent',
            Dimensions=[{
                'Name': 'AutoScalingGroupName',
                'Value': config.auto_scaling_group_name
            }],
            AlarmActions=[policy_arn],
            Tags=self.settings.resource_tags()
        )
        logger.info(f"Put alarm {alarm_name}: CPUUtilization {comparison} {threshold}")
        return alarm_name

    def create_scale_out_alarm(self, config: AutoScalingConfig, policy_arn: str) -> str:
        return self._put_cpu_alarm(
            config,
            config.high_cpu_alarm_name,
            'GreaterThanThreshold',
            config.cpu_upper_threshold,
            config.alarm_evaluation_periods_scale_out,
            policy_arn,
        )

    def create_scale_in_alarm(self, config: AutoScalingConfig, policy_arn: str) -> str:
        return self._put_cpu_alarm(
            config,
            config.low_cpu_alarm_name,
            'LessThanThreshold',
            config.cpu_lower_threshold,
            config.alarm_evaluation_periods_scale_in,
            policy_arn,
        )

    def find_alarms(self, config: AutoScalingConfig) -> List[str]:
        """Names of this group's CPU alarms that currently exist."""
        response = self.cloudwatch_client.describe_alarms(
            AlarmNames=[config.high_cpu_alarm_name, config.low_cpu_alarm_name]
        )
        return [alarm['AlarmName'] for alarm in response.get('MetricAlarms', [])]

    def delete_alarms(self, config: AutoScalingConfig) -> List[str]:
        """Delete the CPU alarms. Returns the names that existed."""
        existing = self.find_alarms(config)
        if not existing:
            logger.info("No CPU alarms to delete")
            return []
        self.cloudwatch_client.delete_alarms(AlarmNames=existing)
        logger.info(f"Deleted alarms: {existing}")
        return existing
