import pytest
from pydantic import ValidationError

from vm_scaling.config.settings import Settings, get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    settings = Settings(_env_file=None)

    assert settings.aws_region == "us-east-1"
    assert settings.instance_poll_interval == 5.0
    assert settings.instance_max_attempts == 60
    assert settings.rps_target == 50.0
    assert settings.launch_delay_seconds == 100.0
    assert settings.load_balancer_release_wait == 30.0
    assert settings.instance_release_wait == 60.0
    assert settings.http_port == 80
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    monkeypatch.setenv("RPS_TARGET", "75")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.aws_region == "eu-west-1"
    assert settings.rps_target == 75.0
    assert settings.log_level == "DEBUG"


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")


def test_negative_wait_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, instance_release_wait=-1)


def test_resource_tags():
    tags = Settings(_env_file=None).resource_tags("web-service")

    assert {t["Key"]: t["Value"] for t in tags} == {
        "Project": "vm-scaling",
        "Type": "Project",
        "Role": "Test",
        "EOL": "20201230",
        "Name": "web-service",
    }
    assert "Name" not in {t["Key"] for t in Settings(_env_file=None).resource_tags()}


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()
