"""Application load balancer and target group management."""
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from vm_scaling.aws.clients import error_code, get_elbv2_client
from vm_scaling.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

TARGET_GROUP_NOT_FOUND = 'TargetGroupNotFound'
LOAD_BALANCER_NOT_FOUND = 'LoadBalancerNotFound'


class LoadBalancerManager:
    """Get-or-create and delete the load balancer in front of the auto-scaling group."""

    def __init__(self, settings: Optional[Settings] = None, elbv2_client=None):
        self.settings = settings if settings is not None else get_settings()
        self.elbv2_client = (elbv2_client if elbv2_client is not None
                             else get_elbv2_client())

    def find_target_group_arn(self, name: str) -> Optional[str]:
        try:
            response = self.elbv2_client.describe_target_groups(Names=[name])
        except ClientError as e:
            if error_code(e) == TARGET_GROUP_NOT_FOUND:
                return None
            raise
        groups = response.get('TargetGroups', [])
        return groups[0]['TargetGroupArn'] if groups else None

    def get_or_create_target_group(self, name: str, vpc_id: str) -> str:
        """Return the ARN of an HTTP target group health checked on `/`."""
        existing = self.find_target_group_arn(name)
        if existing:
            logger.info(f"Using existing target group {name}: {existing}")
            return existing

        port = self.settings.http_port
        response = self.elbv2_client.create_target_group(
            Name=name,
            Protocol='HTTP',
            Port=port,
            VpcId=vpc_id,
            TargetType='instance',
            HealthCheckProtocol='HTTP',
            HealthCheckPort=str(port),
            HealthCheckPath='/',
            HealthCheckIntervalSeconds=30,
            HealthCheckTimeoutSeconds=5,
            HealthyThresholdCount=2,
            UnhealthyThresholdCount=2,
            Tags=self.settings.resource_tags()
        )
        arn = response['TargetGroups'][0]['TargetGroupArn']
        logger.info(f"Created target group {name}: {arn}")
        return arn

    def find_load_balancer(self, name: str) -> Optional[Dict[str, Any]]:
        """Return the load balancer description, or None."""
        try:
            response = self.elbv2_client.describe_load_balancers(Names=[name])
        except ClientError as e:
            if error_code(e) == LOAD_BALANCER_NOT_FOUND:
                return None
            raise
        balancers = response.get('LoadBalancers', [])
        return balancers[0] if balancers else None

    def get_or_create_load_balancer(self, name: str, subnet_ids: List[str],
                                    security_group_id: str,
                                    target_group_arn: str) -> Dict[str, Any]:
        """Return an internet-facing ALB forwarding HTTP to the target group.

        Args:
            name: Load balancer name
            subnet_ids: Subnets to attach, at least two
            security_group_id: Security group of the load balancer
            target_group_arn: Target group the listener forwards to

        Returns:
            Load balancer description with LoadBalancerArn and DNSName

        Raises:
            ValueError: if fewer than two subnets are given
        """
        if len(subnet_ids) < 2:
            raise ValueError(
                f"An application load balancer needs at least two subnets, got {len(subnet_ids)}"
            )

        balancer = self.find_load_balancer(name)
        if balancer:
            logger.info(f"Using existing load balancer {name}: {balancer['LoadBalancerArn']}")
        else:
            response = self.elbv2_client.create_load_balancer(
                Name=name,
                Subnets=subnet_ids,
                SecurityGroups=[security_group_id],
                Scheme='internet-facing',
                Type='application',
                IpAddressType='ipv4',
                Tags=self.settings.resource_tags()
            )
            balancer = response['LoadBalancers'][0]
            logger.info(f"Created load balancer {name}: {balancer['DNSName']}")

        self._ensure_http_listener(balancer['LoadBalancerArn'], target_group_arn)
        return balancer

    def _ensure_http_listener(self, load_balancer_arn: str, target_group_arn: str) -> str:
        port = self.settings.http_port
        listeners = self.elbv2_client.describe_listeners(
            LoadBalancerArn=load_balancer_arn
        ).get('Listeners', [])
        forward = [{
            'Type': 'forward',
            'TargetGroupArn': target_group_arn
        }]
        for listener in listeners:
            if listener.get('Port') != port:
                continue
            arn = listener['ListenerArn']
            actions = listener.get('DefaultActions', [])
            current = actions[0].get('TargetGroupArn') if actions else None
            if current != target_group_arn:
                self.elbv2_client.modify_listener(ListenerArn=arn, DefaultActions=forward)
                logger.info(f"Pointed HTTP listener {arn} at {target_group_arn} (was {current})")
            return arn

        response = self.elbv2_client.create_listener(
            LoadBalancerArn=load_balancer_arn,
            Protocol='HTTP',
            Port=port,
            DefaultActions=forward
        )
        arn = response['Listeners'][0]['ListenerArn']
        logger.info(f"Created HTTP listener: {arn}")
        return arn

    def delete_load_balancer(self, arn: str) -> bool:
        try:
            self.elbv2_client.delete_load_balancer(LoadBalancerArn=arn)
        except ClientError as e:
            if error_code(e) == LOAD_BALANCER_NOT_FOUND:
                return False
            raise
        logger.info(f"Deleted load balancer {arn}")
        return True

    def delete_target_group(self, arn: str) -> bool:
        try:
            self.elbv2_client.delete_target_group(TargetGroupArn=arn)
        except ClientError as e:
            if error_code(e) == TARGET_GROUP_NOT_FOUND:
                return False
            raise
        logger.info(f"Deleted target group {arn}")
        return True
