"""
Teardown orchestrator for the auto-scaling lab.

Provides two cleanup strategies:
- Teardown: release what one run recorded, in reverse dependency order
- Sweep: find leftovers of earlier runs by name and project tag

Every step runs independently. A failing step is logged and recorded, the
remaining steps still run.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from vm_scaling.aws.autoscaling import AutoScalingGroupManager
from vm_scaling.aws.cloudwatch import AlarmManager
from vm_scaling.aws.ec2 import EC2Manager
from vm_scaling.aws.elb import LoadBalancerManager
from vm_scaling.config.lab_config import AutoScalingConfig
from vm_scaling.config.settings import Settings, get_settings

if TYPE_CHECKING:
    from vm_scaling.tasks.autoscaling import ResourceConfig

logger = logging.getLogger(__name__)

Step = Tuple[str, Callable[[], Dict[str, Any]]]


class CleanupManager:
    """
    Cleanup orchestrator for the resources of the auto-scaling lab.

    Tracks which steps actually released something so that the release waits
    are only spent when needed.
    """

    def __init__(self, config: AutoScalingConfig, settings: Optional[Settings] = None,
                 ec2: Optional[EC2Manager] = None,
                 load_balancers: Optional[LoadBalancerManager] = None,
                 auto_scaling: Optional[AutoScalingGroupManager] = None,
                 alarms: Optional[AlarmManager] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.settings = settings if settings is not None else get_settings()
        self.ec2 = ec2 if ec2 is not None else EC2Manager(self.settings, sleep=sleep)
        self.load_balancers = (load_balancers if load_balancers is not None
                               else LoadBalancerManager(self.settings))
        self.auto_scaling = (auto_scaling if auto_scaling is not None
                             else AutoScalingGroupManager(self.settings))
        self.alarms = alarms if alarms is not None else AlarmManager(self.settings)
        self._sleep = sleep
        self.cleanup_results = {}
        self.errors = []
        self._load_balancer_released = False
        self._instances_released = False

    def teardown(self, resources: 'ResourceConfig') -> Dict[str, Any]:
        """
        Release the resources of one run.

        Args:
            resources: What the run recorded; missing ARNs are looked up by name

        Returns:
            Dict with cleanup results and errors
        """
        logger.info("Starting teardown of auto-scaling lab resources...")

        cleanup_order = [
            ("CloudWatch Alarms", self._cleanup_alarms),
            ("Auto Scaling Group", self._cleanup_auto_scaling_group),
            ("Load Balancer", lambda: self._cleanup_load_balancer(resources.load_balancer_arn)),
            ("Load Balancer Release", self._wait_for_load_balancer_release),
            ("Target Group", lambda: self._cleanup_target_group(resources.target_group_arn)),
            ("Launch Template", self._cleanup_launch_template),
            ("Load Generator", lambda: self._cleanup_instances([resources.load_generator_id])),
            ("Instance Release", self._wait_for_instance_release),
            ("ELB/ASG Security Group",
             lambda: self._cleanup_security_group(self.settings.elb_asg_security_group)),
            ("Load Generator Security Group",
             lambda: self._cleanup_security_group(self.settings.lg_security_group)),
        ]
        return self._run(cleanup_order, "teardown")

    def cleanup_all(self) -> Dict[str, Any]:
        """
        Sweep for resources left behind by an earlier run.

        Returns:
            Dict with cleanup results and errors
        """
        logger.info("Starting sweep of auto-scaling lab resources...")

        cleanup_order = [
            ("Auto Scaling Group", self._cleanup_auto_scaling_group),
            ("CloudWatch Alarms", self._cleanup_alarms),
            ("Load Balancer", lambda: self._cleanup_load_balancer(None)),
            ("Launch Template", self._cleanup_launch_template),
            ("Project Instances",
             lambda: self._cleanup_instances(self.ec2.find_project_instances())),
            ("Load Balancer Release", self._wait_for_load_balancer_release),
            ("Target Group", lambda: self._cleanup_target_group(None)),
            ("Instance Release", self._wait_for_instance_release),
        ]
        for name in self._security_group_names():
            cleanup_order.append(
                (f"Security Group {name}", lambda name=name: self._cleanup_security_group(name))
            )
        return self._run(cleanup_order, "sweep")

    def verify(self) -> Dict[str, Any]:
        """Report which lab resources still exist."""
        config = self.config
        remaining = {
            "auto_scaling_group": bool(
                self.auto_scaling.describe_group(config.auto_scaling_group_name)),
            "alarms": self.alarms.find_alarms(config),
            "load_balancer": bool(
                self.load_balancers.find_load_balancer(config.load_balancer_name)),
            "target_group": bool(
                self.load_balancers.find_target_group_arn(config.auto_scaling_target_group)),
            "launch_template": bool(
                self.ec2.find_launch_template_id(config.launch_template_name)),
            "security_groups": [
                name for name in self._security_group_names()
                if self.ec2.find_security_group_id(name)
            ],
            "instances": len(self.ec2.find_project_instances()),
        }
        remaining["clean"] = not any(remaining.values())

        if remaining["clean"]:
            logger.info("No lab resources remain")
        else:
            logger.warning(f"Lab resources remain: {remaining}")
        return remaining

    def _security_group_names(self) -> List[str]:
        return [
            self.settings.elb_asg_security_group,
            self.settings.lg_security_group,
            self.settings.web_service_security_group,
        ]

    def _run(self, cleanup_order: List[Step], cleanup_type: str) -> Dict[str, Any]:
        self.cleanup_results = {}
        self.errors = []
        self._load_balancer_released = False
        self._instances_released = False

        for resource_type, cleanup_func in cleanup_order:
            try:
                logger.info(f"Cleaning up {resource_type}...")
                self.cleanup_results[resource_type] = cleanup_func()
            except Exception as e:
                error_msg = f"{resource_type} cleanup failed: {e}"
                logger.error(error_msg)
                self.errors.append(error_msg)
                self.cleanup_results[resource_type] = {"status": "error", "error": str(e)}

        return self._generate_cleanup_report(cleanup_type)

    def _cleanup_alarms(self) -> Dict[str, Any]:
        deleted = self.alarms.delete_alarms(self.config)
        return {"status": "success", "deleted_alarms": deleted, "count": len(deleted)}

    def _cleanup_auto_scaling_group(self) -> Dict[str, Any]:
        deleted = self.auto_scaling.delete_auto_scaling_group(self.config.auto_scaling_group_name)
        if deleted:
            # Force delete terminates the group's instances
            self._instances_released = True
        return self._deleted_result(deleted)

    def _cleanup_load_balancer(self, arn: Optional[str]) -> Dict[str, Any]:
        if not arn:
            balancer = self.load_balancers.find_load_balancer(self.config.load_balancer_name)
            arn = balancer['LoadBalancerArn'] if balancer else None
        if not arn:
            return self._deleted_result(False)

        deleted = self.load_balancers.delete_load_balancer(arn)
        self._load_balancer_released = self._load_balancer_released or deleted
        return self._deleted_result(deleted)

    def _cleanup_target_group(self, arn: Optional[str]) -> Dict[str, Any]:
        arn = arn or self.load_balancers.find_target_group_arn(self.config.auto_scaling_target_group)
        if not arn:
            return self._deleted_result(False)
        return self._deleted_result(self.load_balancers.delete_target_group(arn))

    def _cleanup_launch_template(self) -> Dict[str, Any]:
        return self._deleted_result(
            self.ec2.delete_launch_template(self.config.launch_template_name))

    def _cleanup_instances(self, instance_ids: List[Optional[str]]) -> Dict[str, Any]:
        terminated = self.ec2.terminate_instances(instance_ids)
        if terminated:
            self._instances_released = True
        return {"status": "success", "terminated_instances": terminated, "count": len(terminated)}

    def _cleanup_security_group(self, name: str) -> Dict[str, Any]:
        return self._deleted_result(self.ec2.delete_security_group(name))

    def _wait_for_load_balancer_release(self) -> Dict[str, Any]:
        return self._wait(self._load_balancer_released, self.settings.load_balancer_release_wait)

    def _wait_for_instance_release(self) -> Dict[str, Any]:
        return self._wait(self._instances_released, self.settings.instance_release_wait)

    def _wait(self, needed: bool, seconds: float) -> Dict[str, Any]:
        if not needed:
            return {"status": "skipped"}
        logger.info(f"Waiting {seconds}s for AWS to release dependencies...")
        self._sleep(seconds)
        return {"status": "success", "waited": seconds}

    @staticmethod
    def _deleted_result(deleted: bool) -> Dict[str, Any]:
        return {"status": "success" if deleted else "not_found", "count": int(bool(deleted))}

    def _generate_cleanup_report(self, cleanup_type: str) -> Dict[str, Any]:
        """Generate a cleanup report."""
        total_resources = sum(
            result.get('count', 0) for result in self.cleanup_results.values()
            if isinstance(result, dict)
        )

        report = {
            "cleanup_type": cleanup_type,
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime()),
            "total_resources_cleaned": total_resources,
            "results": self.cleanup_results,
            "errors": self.errors,
            "status": "partial" if self.errors else "success"
        }

        logger.info(f"Cleanup report generated: {total_resources} resources cleaned")
        if self.errors:
            logger.warning(f"Cleanup completed with {len(self.errors)} errors")

        return report
