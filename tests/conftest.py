import boto3
import pytest
from moto import mock_aws

from vm_scaling.aws.clients import AWSClientManager
from vm_scaling.config.lab_config import AutoScalingConfig, HorizontalScalingConfig
from vm_scaling.config.settings import Settings, get_settings
from tests.consts import TEST_AUTOSCALING_CONFIG, TEST_HORIZONTAL_CONFIG, TEST_REGION

from tests.fixtures.load_generator_fixtures import load_generator_session  # noqa: F401


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        get_settings.cache_clear()
        AWSClientManager.reset()
        yield
        AWSClientManager.reset()
        get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    """Settings with every wait set to zero."""
    return Settings(
        aws_region=TEST_REGION,
        instance_poll_interval=0,
        instance_max_attempts=3,
        launch_delay_seconds=0,
        log_poll_interval=0,
        request_retry_delay=0,
        request_max_attempts=3,
        max_test_duration=60,
        load_balancer_release_wait=0,
        instance_release_wait=0,
        test_log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def autoscaling_config():
    return AutoScalingConfig(**TEST_AUTOSCALING_CONFIG)


@pytest.fixture
def horizontal_config():
    return HorizontalScalingConfig(**TEST_HORIZONTAL_CONFIG)


@pytest.fixture
def ec2_client(mocked_aws):
    return boto3.client("ec2", region_name=TEST_REGION)


@pytest.fixture
def elbv2_client(mocked_aws):
    return boto3.client("elbv2", region_name=TEST_REGION)


@pytest.fixture
def autoscaling_client(mocked_aws):
    return boto3.client("autoscaling", region_name=TEST_REGION)


@pytest.fixture
def cloudwatch_client(mocked_aws):
    return boto3.client("cloudwatch", region_name=TEST_REGION)


@pytest.fixture
def ami_id(ec2_client):
    """An image moto knows about."""
    return ec2_client.describe_images()["Images"][0]["ImageId"]


@pytest.fixture
def default_vpc_id(ec2_client):
    vpcs = ec2_client.describe_vpcs(Filters=[{"Name": "is-default", "Values": ["true"]}])
    return vpcs["Vpcs"][0]["VpcId"]
