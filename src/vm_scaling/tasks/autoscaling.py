"""Auto-scaling: an ASG behind a load balancer, scaled by CPU alarms while a test runs."""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from vm_scaling.aws.autoscaling import AutoScalingGroupManager
from vm_scaling.aws.cloudwatch import AlarmManager
from vm_scaling.aws.ec2 import EC2Manager
from vm_scaling.aws.elb import LoadBalancerManager
from vm_scaling.cleanup.cleanup_manager import CleanupManager
from vm_scaling.config.lab_config import AutoScalingConfig
from vm_scaling.config.settings import Settings, get_settings
from vm_scaling.load_generator import LoadGeneratorClient
from vm_scaling.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)


@dataclass
class ResourceConfig:
    """Everything provisioned so far by one auto-scaling run."""

    vpc_id: Optional[str] = None
    subnet_ids: List[str] = field(default_factory=list)
    elb_asg_security_group_id: Optional[str] = None
    lg_security_group_id: Optional[str] = None
    launch_template_id: Optional[str] = None
    target_group_arn: Optional[str] = None
    load_balancer_arn: Optional[str] = None
    load_balancer_dns: Optional[str] = None
    auto_scaling_group_name: Optional[str] = None
    scale_out_policy_arn: Optional[str] = None
    scale_in_policy_arn: Optional[str] = None
    alarm_names: List[str] = field(default_factory=list)
    load_generator_id: Optional[str] = None
    load_generator_dns: Optional[str] = None


class AutoScalingTask:
    """Provision the auto-scaling stack, run warm-up and auto-scaling tests, tear down."""

    def __init__(self, config: AutoScalingConfig, settings: Optional[Settings] = None,
                 ec2: Optional[EC2Manager] = None,
                 load_balancers: Optional[LoadBalancerManager] = None,
                 auto_scaling: Optional[AutoScalingGroupManager] = None,
                 alarms: Optional[AlarmManager] = None,
                 cleanup: Optional[CleanupManager] = None,
                 load_generator_factory: Callable[[str], LoadGeneratorClient] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.settings = settings if settings is not None else get_settings()
        self.ec2 = ec2 if ec2 is not None else EC2Manager(self.settings, sleep=sleep)
        self.load_balancers = (load_balancers if load_balancers is not None
                               else LoadBalancerManager(self.settings))
        self.auto_scaling = (auto_scaling if auto_scaling is not None
                             else AutoScalingGroupManager(self.settings))
        self.alarms = alarms if alarms is not None else AlarmManager(self.settings)
        self.cleanup = cleanup if cleanup is not None else CleanupManager(
            config, self.settings, ec2=self.ec2, load_balancers=self.load_balancers,
            auto_scaling=self.auto_scaling, alarms=self.alarms, sleep=sleep)
        self.load_generator_factory = load_generator_factory or (
            lambda dns: LoadGeneratorClient(dns, self.settings, sleep=sleep)
        )
        self.resources = ResourceConfig()

    @log_execution_time
    def run(self) -> Dict[str, Any]:
        """Run the whole lab. Teardown always runs, whatever failed before it."""
        self.resources = ResourceConfig()
        test_ids = {}
        try:
            self.initialize_resources()
            self.initialize_test_resources()
            test_ids = self.execute_test()
        finally:
            teardown_report = self.destroy()

        return {
            "resources": asdict(self.resources),
            "test_ids": test_ids,
            "teardown": teardown_report,
        }

    def initialize_resources(self) -> ResourceConfig:
        config = self.config
        res = self.resources

        res.vpc_id = self.ec2.get_default_vpc()
        res.subnet_ids = self.ec2.get_subnet_ids(res.vpc_id)
        res.elb_asg_security_group_id = self.ec2.get_or_create_http_security_group(
            self.settings.elb_asg_security_group, res.vpc_id)

        res.launch_template_id = self.ec2.get_or_create_launch_template(
            config.launch_template_name, config.web_service_ami, config.instance_type,
            res.elb_asg_security_group_id)

        res.target_group_arn = self.load_balancers.get_or_create_target_group(
            config.auto_scaling_target_group, res.vpc_id)

        balancer = self.load_balancers.get_or_create_load_balancer(
            config.load_balancer_name, res.subnet_ids, res.elb_asg_security_group_id,
            res.target_group_arn)
        res.load_balancer_arn = balancer['LoadBalancerArn']
        res.load_balancer_dns = balancer['DNSName']

        res.auto_scaling_group_name = self.auto_scaling.get_or_create_auto_scaling_group(
            config, res.subnet_ids, res.target_group_arn)

        res.scale_out_policy_arn, res.scale_in_policy_arn = \
            self.auto_scaling.put_scaling_policies(config)

        res.alarm_names.append(
            self.alarms.create_scale_out_alarm(config, res.scale_out_policy_arn))
        res.alarm_names.append(
            self.alarms.create_scale_in_alarm(config, res.scale_in_policy_arn))

        logger.info(f"Auto-scaling stack ready behind {res.load_balancer_dns}")
        return res

    def initialize_test_resources(self) -> ResourceConfig:
        res = self.resources
        vpc_id = res.vpc_id or self.ec2.get_default_vpc()
        res.lg_security_group_id = self.ec2.get_or_create_http_security_group(
            self.settings.lg_security_group, vpc_id)

        res.load_generator_id = self.ec2.run_instance(
            self.config.load_generator_ami, self.config.instance_type,
            res.lg_security_group_id, 'load-generator')
        instance = self.ec2.wait_for_instance_ready(res.load_generator_id)
        res.load_generator_dns = instance['PublicDnsName']
        return res

    def execute_test(self) -> Dict[str, str]:
        """Warm up the load balancer, then run the auto-scaling test."""
        client = self.load_generator_factory(self.resources.load_generator_dns)
        dns = self.resources.load_balancer_dns

        warmup_id = client.start_warmup(dns)
        client.wait_for_test_end(warmup_id)

        test_id = client.start_autoscaling_test(dns)
        client.wait_for_test_end(test_id)

        logger.info(f"Auto-scaling test {test_id} finished")
        return {"warmup": warmup_id, "autoscaling": test_id}

    def destroy(self) -> Dict[str, Any]:
        report = self.cleanup.teardown(self.resources)
        if report["errors"]:
            logger.warning(f"Teardown left errors: {report['errors']}")
        return report
