"""AWS client management."""
import logging
from typing import Any

import boto3
from botocore.exceptions import ClientError

from vm_scaling.config.settings import get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Singleton manager for AWS service clients."""
    _instance = None
    _clients = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the client manager with settings."""
        self.settings = get_settings()
        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.aws_endpoint_url

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Region: {self.region}")
        if self.endpoint_url:
            logger.info(f"  Endpoint: {self.endpoint_url}")

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region
        }
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        # Named profile (SSO or shared credentials file) takes precedence
        if self.settings.aws_profile:
            session = boto3.Session(profile_name=self.settings.aws_profile)
            client = session.client(service_name, **client_kwargs)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client using profile: {self.settings.aws_profile}")
            return client

        if self.settings.aws_access_key_id:
            client_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            client_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key
        if self.settings.aws_session_token:
            client_kwargs['aws_session_token'] = self.settings.aws_session_token

        try:
            client = boto3.client(service_name, **client_kwargs)
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    def clear_clients(self):
        """Clear all cached clients."""
        self._clients.clear()
        logger.debug("Cleared all AWS clients")

    @classmethod
    def reset(cls):
        """Drop the singleton so the next use picks up fresh settings."""
        cls._clients.clear()
        cls._instance = None


def error_code(error: ClientError) -> str:
    """Return the AWS error code carried by a ClientError."""
    return error.response.get('Error', {}).get('Code', '')


# Convenience functions for the services used by the lab

def get_ec2_client():
    """Get the EC2 client."""
    return AWSClientManager().get_client('ec2')


def get_elbv2_client():
    """Get the Elastic Load Balancing v2 client."""
    return AWSClientManager().get_client('elbv2')


def get_autoscaling_client():
    """Get the Auto Scaling Group client."""
    return AWSClientManager().get_client('autoscaling')


def get_cloudwatch_client():
    """Get the CloudWatch client."""
    return AWSClientManager().get_client('cloudwatch')
