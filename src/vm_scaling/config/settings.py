# src/vm_scaling/config/settings.py
import logging
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for runtime settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Lab-specific values (AMIs, resource names, scaling thresholds) live in the
    JSON lab configuration files, see vm_scaling.config.lab_config.

    Usage:
        from vm_scaling.config.settings import get_settings
        settings = get_settings()
        region = settings.aws_region
    """

    # Application Settings
    app_name: str = Field(
        default="vm-scaling",
        description="Application name"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_session_token: Optional[str] = Field(
        default=None,
        alias="AWS_SESSION_TOKEN"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL",
        description="Custom endpoint, e.g. a local moto server"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        alias="AWS_PROFILE"
    )

    # Lab configuration files
    horizontal_config_file: str = Field(
        default="horizontal-scaling-config.json",
        description="JSON configuration of the horizontal scaling task"
    )

    autoscaling_config_file: str = Field(
        default="auto-scaling-config.json",
        description="JSON configuration of the auto-scaling task"
    )

    # Tagging
    project_tag: str = Field(default="vm-scaling")
    type_tag: str = Field(default="Project")
    role_tag: str = Field(default="Test")
    eol_tag: str = Field(default="20201230")

    # Security groups
    lg_security_group: str = Field(default="lg-security-group")
    web_service_security_group: str = Field(default="web-service-security-group")
    elb_asg_security_group: str = Field(default="elb-asg-security-group")
    http_port: int = Field(default=80, gt=0, le=65535)

    # Instance readiness polling
    instance_poll_interval: float = Field(
        default=5.0,
        ge=0,
        description="Seconds between instance state checks"
    )

    instance_max_attempts: int = Field(
        default=60,
        gt=0,
        description="State checks before giving up on an instance"
    )

    # Horizontal scaling
    rps_target: float = Field(
        default=50.0,
        gt=0,
        description="Stop adding web services once this RPS is reached"
    )

    launch_delay_seconds: float = Field(
        default=100.0,
        ge=0,
        description="Minimum seconds between two web service launches"
    )

    # Load generator
    log_poll_interval: float = Field(default=1.0, ge=0)
    request_retry_delay: float = Field(default=0.1, ge=0)
    request_max_attempts: int = Field(default=600, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    max_test_duration: float = Field(
        default=7200.0,
        gt=0,
        description="Seconds to wait for a load generator test to finish"
    )
    test_log_dir: str = Field(
        default="logs",
        description="Directory where fetched load generator logs are written"
    )

    # Teardown
    load_balancer_release_wait: float = Field(default=30.0, ge=0)
    instance_release_wait: float = Field(default=60.0, ge=0)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate the log level is a standard logging level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid log_level: {v}")
        return level

    def resource_tags(self, name: Optional[str] = None) -> List[Dict[str, str]]:
        """Tags attached to every resource created by the lab."""
        tags = [
            {'Key': 'Project', 'Value': self.project_tag},
            {'Key': 'Type', 'Value': self.type_tag},
            {'Key': 'Role', 'Value': self.role_tag},
            {'Key': 'EOL', 'Value': self.eol_tag},
        ]
        if name:
            tags.append({'Key': 'Name', 'Value': name})
        return tags

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
