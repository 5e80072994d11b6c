"""EC2 resources: default VPC lookup, security groups, instances and launch templates."""
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from vm_scaling.aws.clients import error_code, get_ec2_client
from vm_scaling.config.settings import Settings, get_settings
from vm_scaling.exceptions import ResourceNotFoundError, ResourceTimeoutError

logger = logging.getLogger(__name__)

LAUNCH_TEMPLATE_NOT_FOUND = (
    'InvalidLaunchTemplateName.NotFoundException',
    'InvalidLaunchTemplateId.NotFound',
)
INSTANCE_NOT_FOUND = 'InvalidInstanceID.NotFound'
SECURITY_GROUP_NOT_FOUND = ('InvalidGroup.NotFound', 'InvalidGroupId.NotFound')


class EC2Manager:
    """Provision and release the EC2 pieces of the lab."""

    def __init__(self, settings: Optional[Settings] = None, ec2_client=None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings if settings is not None else get_settings()
        self.ec2_client = ec2_client if ec2_client is not None else get_ec2_client()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def get_default_vpc(self) -> str:
        """Return the id of the account's default VPC."""
        response = self.ec2_client.describe_vpcs(
            Filters=[{'Name': 'is-default', 'Values': ['true']}]
        )
        vpcs = response.get('Vpcs', [])
        if not vpcs:
            raise ResourceNotFoundError("No default VPC found in region "
                                        f"{self.settings.aws_region}")
        vpc_id = vpcs[0]['VpcId']
        logger.info(f"Using default VPC: {vpc_id}")
        return vpc_id

    def get_subnet_ids(self, vpc_id: str) -> List[str]:
        response = self.ec2_client.describe_subnets(
            Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]
        )
        subnet_ids = [subnet['SubnetId'] for subnet in response.get('Subnets', [])]
        logger.debug(f"Subnets in {vpc_id}: {subnet_ids}")
        return subnet_ids

    # ------------------------------------------------------------------
    # Security groups
    # ------------------------------------------------------------------

    def find_security_group_id(self, name: str, vpc_id: Optional[str] = None) -> Optional[str]:
        """Look up a security group by name, optionally scoped to a VPC."""
        filters = [{'Name': 'group-name', 'Values': [name]}]
        if vpc_id:
            filters.append({'Name': 'vpc-id', 'Values': [vpc_id]})
        try:
            response = self.ec2_client.describe_security_groups(Filters=filters)
        except ClientError as e:
            logger.warning(f"Security group lookup for {name} failed: {e}")
            return None

        groups = response.get('SecurityGroups', [])
        return groups[0]['GroupId'] if groups else None

    def get_or_create_http_security_group(self, name: str, vpc_id: str) -> str:
        """Return a security group allowing inbound HTTP from anywhere.

        An existing group of the same name in the VPC is reused as is.
        """
        existing = self.find_security_group_id(name, vpc_id)
        if existing:
            logger.info(f"Using existing security group {name}: {existing}")
            return existing

        response = self.ec2_client.create_security_group(
            GroupName=name,
            Description=f"{name} allowing HTTP",
            VpcId=vpc_id,
            TagSpecifications=[{
                'ResourceType': 'security-group',
                'Tags': self.settings.resource_tags(name)
            }]
        )
        group_id = response['GroupId']

        try:
            self.ec2_client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[{
                    'IpProtocol': 'tcp',
                    'FromPort': self.settings.http_port,
                    'ToPort': self.settings.http_port,
                    'IpRanges': [{'CidrIp': '0.0.0.0/0'}]
                }]
            )
        except ClientError as e:
            if error_code(e) != 'InvalidPermission.Duplicate':
                raise
            logger.debug(f"HTTP rule already present on {group_id}")

        logger.info(f"Created security group {name}: {group_id}")
        return group_id

    def delete_security_group(self, name: str) -> bool:
        """Delete a security group by name. Returns False when it does not exist."""
        group_id = self.find_security_group_id(name)
        if not group_id:
            logger.info(f"Security group {name} not found, nothing to delete")
            return False

        try:
            self.ec2_client.delete_security_group(GroupId=group_id)
        except ClientError as e:
            if error_code(e) in SECURITY_GROUP_NOT_FOUND:
                return False
            raise

        logger.info(f"Deleted security group {name}: {group_id}")
        return True

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def launch_instance(self, ami_id: str, instance_type: str, security_group_id: str,
                        name: str, detailed_monitoring: bool = False) -> Dict[str, Any]:
        """Run one tagged instance and block until it is ready.

        Returns:
            The instance description, including PublicDnsName
        """
        instance_id = self.run_instance(ami_id, instance_type, security_group_id, name,
                                        detailed_monitoring)
        return self.wait_for_instance_ready(instance_id)

    def run_instance(self, ami_id: str, instance_type: str, security_group_id: str,
                     name: str, detailed_monitoring: bool = False) -> str:
        """Run one tagged instance without waiting for it. Returns the instance id."""
        response = self.ec2_client.run_instances(
            ImageId=ami_id,
            InstanceType=instance_type,
            MinCount=1,
            MaxCount=1,
            SecurityGroupIds=[security_group_id],
            Monitoring={'Enabled': detailed_monitoring},
            TagSpecifications=[{
                'ResourceType': 'instance',
                'Tags': self.settings.resource_tags(name)
            }]
        )
        instance_id = response['Instances'][0]['InstanceId']
        logger.info(f"Launched {name} instance {instance_id} ({instance_type}, {ami_id})")
        return instance_id

    def wait_for_instance_ready(self, instance_id: str) -> Dict[str, Any]:
        """Poll until the instance is running and has a public DNS name."""
        max_attempts = self.settings.instance_max_attempts
        for attempt in range(1, max_attempts + 1):
            instance = self._describe_instance(instance_id)
            if instance:
                state = instance.get('State', {}).get('Name')
                dns = instance.get('PublicDnsName')
                if state == 'running' and dns:
                    logger.info(f"Instance {instance_id} ready at {dns}")
                    return instance
                logger.debug(f"Instance {instance_id} state={state} dns={dns!r} "
                             f"(attempt {attempt}/{max_attempts})")
            else:
                logger.debug(f"Instance {instance_id} not visible yet "
                             f"(attempt {attempt}/{max_attempts})")

            if attempt < max_attempts:
                self._sleep(self.settings.instance_poll_interval)

        raise ResourceTimeoutError(
            f"Instance {instance_id} not ready after {max_attempts} attempts"
        )

    def _describe_instance(self, instance_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.ec2_client.describe_instances(InstanceIds=[instance_id])
        except ClientError as e:
            # Freshly launched ids can take a moment to show up
            if error_code(e) == INSTANCE_NOT_FOUND:
                return None
            raise

        for reservation in response.get('Reservations', []):
            for instance in reservation.get('Instances', []):
                return instance
        return None

    def terminate_instances(self, instance_ids: Iterable[str]) -> List[str]:
        instance_ids = [i for i in instance_ids if i]
        if not instance_ids:
            return []
        self.ec2_client.terminate_instances(InstanceIds=instance_ids)
        logger.info(f"Terminating instances: {instance_ids}")
        return instance_ids

    def find_project_instances(self, states: Iterable[str] = ('pending', 'running')) -> List[str]:
        """Ids of instances carrying the project tag in one of the given states."""
        paginator = self.ec2_client.get_paginator('describe_instances')
        instance_ids = []
        for page in paginator.paginate(Filters=[
            {'Name': 'tag:Project', 'Values': [self.settings.project_tag]},
            {'Name': 'instance-state-name', 'Values': list(states)},
        ]):
            for reservation in page.get('Reservations', []):
                instance_ids.extend(i['InstanceId'] for i in reservation.get('Instances', []))
        return instance_ids

    # ------------------------------------------------------------------
    # Launch templates
    # ------------------------------------------------------------------

    def find_launch_template_id(self, name: str) -> Optional[str]:
        try:
            response = self.ec2_client.describe_launch_templates(LaunchTemplateNames=[name])
        except ClientError as e:
            if error_code(e) in LAUNCH_TEMPLATE_NOT_FOUND:
                return None
            raise
        templates = response.get('LaunchTemplates', [])
        return templates[0]['LaunchTemplateId'] if templates else None

    def get_or_create_launch_template(self, name: str, ami_id: str, instance_type: str,
                                      security_group_id: str) -> str:
        """Return the id of the launch template used by the auto-scaling group."""
        existing = self.find_launch_template_id(name)
        if existing:
            logger.info(f"Using existing launch template {name}: {existing}")
            return existing

        response = self.ec2_client.create_launch_template(
            LaunchTemplateName=name,
            LaunchTemplateData={
                'ImageId': ami_id,
                'InstanceType': instance_type,
                'Monitoring': {'Enabled': True},
                'NetworkInterfaces': [{
                    'DeviceIndex': 0,
                    'AssociatePublicIpAddress': True,
                    'Groups': [security_group_id],
                }],
                'TagSpecifications': [{
                    'ResourceType': 'instance',
                    'Tags': self.settings.resource_tags(),
                }],
            },
            TagSpecifications=[{
                'ResourceType': 'launch-template',
                'Tags': self.settings.resource_tags(name),
            }]
        )
        template_id = response['LaunchTemplate']['LaunchTemplateId']
        logger.info(f"Created launch template {name}: {template_id}")
        return template_id

    def delete_launch_template(self, name: str) -> bool:
        """Delete a launch template by name. Returns False when it does not exist."""
        try:
            self.ec2_client.delete_launch_template(LaunchTemplateName=name)
        except ClientError as e:
            if error_code(e) in LAUNCH_TEMPLATE_NOT_FOUND:
                logger.info(f"Launch template {name} not found, nothing to delete")
                return False
            raise
        logger.info(f"Deleted launch template {name}")
        return True
