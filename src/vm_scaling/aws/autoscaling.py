"""Auto-scaling group and scaling policy management."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from vm_scaling.aws.clients import get_autoscaling_client
from vm_scaling.config.lab_config import AutoScalingConfig
from vm_scaling.config.settings import Settings, get_settings
from vm_scaling.exceptions import ResourceNotFoundError

logger = logging.getLogger(__name__)


class AutoScalingGroupManager:
    """Create, scale and delete the lab's auto-scaling group."""

    def __init__(self, settings: Optional[Settings] = None, autoscaling_client=None):
        self.settings = settings if settings is not None else get_settings()
        self.autoscaling_client = (autoscaling_client if autoscaling_client is not None
                                   else get_autoscaling_client())

    def describe_group(self, name: str) -> Optional[Dict[str, Any]]:
        response = self.autoscaling_client.describe_auto_scaling_groups(
            AutoScalingGroupNames=[name]
        )
        groups = response.get('AutoScalingGroups', [])
        return groups[0] if groups else None

    def _group_tags(self, name: str) -> List[Dict[str, Any]]:
        return [
            {
                'ResourceId': name,
                'ResourceType': 'auto-scaling-group',
                'Key': tag['Key'],
                'Value': tag['Value'],
                'PropagateAtLaunch': True,
            }
            for tag in self.settings.resource_tags()
        ]

    def get_or_create_auto_scaling_group(self, config: AutoScalingConfig,
                                         subnet_ids: List[str],
                                         target_group_arn: str) -> str:
        """Create the group behind the target group, unless it already exists.

        Returns:
            The auto-scaling group name
        """
        name = config.auto_scaling_group_name
        if self.describe_group(name):
            logger.info(f"Using existing auto-scaling group {name}")
            return name

        self.autoscaling_client.create_auto_scaling_group(
            AutoScalingGroupName=name,
            LaunchTemplate={
                'LaunchTemplateName': config.launch_template_name,
                'Version': '$Latest'
            },
            MinSize=config.asg_min_size,
            MaxSize=config.asg_max_size,
            DesiredCapacity=config.asg_min_size,
            DefaultCooldown=config.asg_default_cool_down_period,
            HealthCheckType='ELB',
            HealthCheckGracePeriod=config.health_check_grace_period,
            VPCZoneIdentifier=','.join(subnet_ids),
            TargetGroupARNs=[target_group_arn],
            Tags=self._group_tags(name)
        )
        logger.info(f"Created auto-scaling group {name} "
                    f"(min={config.asg_min_size}, max={config.asg_max_size})")
        return name

    def put_scaling_policies(self, config: AutoScalingConfig) -> Tuple[str, str]:
        """Attach the scale-out and scale-in simple scaling policies.

        Returns:
            (scale_out_policy_arn, scale_in_policy_arn)
        """
        scale_out_arn = self._put_policy(
            config.auto_scaling_group_name,
            config.scale_out_policy_name,
            config.scale_out_adjustment,
            config.cool_down_period_scale_out,
        )
        scale_in_arn = self._put_policy(
            config.auto_scaling_group_name,
            config.scale_in_policy_name,
            config.scale_in_adjustment,
            config.cool_down_period_scale_in,
        )
        return scale_out_arn, scale_in_arn

    def _put_policy(self, group_name: str, policy_name: str, adjustment: int,
                    cooldown: int) -> str:
        response = self.autoscaling_client.put_scaling_policy(
            AutoScalingGroupName=group_name,
            PolicyName=policy_name,
            PolicyType='SimpleScaling',
            AdjustmentType='ChangeInCapacity',
            ScalingAdjustment=adjustment,
            Cooldown=cooldown
        )
        arn = response.get('PolicyARN') or self._find_policy_arn(group_name, policy_name)
        logger.info(f"Put scaling policy {policy_name} ({adjustment:+d}, cooldown {cooldown}s)")
        return arn

    def _find_policy_arn(self, group_name: str, policy_name: str) -> str:
        policies = self.autoscaling_client.describe_policies(
            AutoScalingGroupName=group_name,
            PolicyNames=[policy_name]
        ).get('ScalingPolicies', [])
        if not policies:
            raise ResourceNotFoundError(
                f"Scaling policy {policy_name} not found on {group_name} after creating it"
            )
        return policies[0]['PolicyARN']

    def delete_auto_scaling_group(self, name: str) -> bool:
        """Force delete the group and its instances. Returns False when absent."""
        if not self.describe_group(name):
            logger.info(f"Auto-scaling group {name} not found, nothing to delete")
            return False
        self.autoscaling_client.delete_auto_scaling_group(
            AutoScalingGroupName=name,
            ForceDelete=True
        )
        logger.info(f"Deleted auto-scaling group {name}")
        return True
