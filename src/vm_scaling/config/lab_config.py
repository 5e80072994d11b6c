"""JSON lab configuration files for the two scaling tasks."""
import logging
from pathlib import Path
from typing import Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from vm_scaling.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ConfigT = TypeVar('ConfigT', bound=BaseModel)


class HorizontalScalingConfig(BaseModel):
    """Content of horizontal-scaling-config.json."""

    model_config = ConfigDict(extra="ignore")

    load_generator_ami: str = Field(min_length=1)
    web_service_ami: str = Field(min_length=1)
    instance_type: str = Field(min_length=1)


class AutoScalingConfig(HorizontalScalingConfig):
    """Content of auto-scaling-config.json."""

    auto_scaling_target_group: str = Field(min_length=1)
    load_balancer_name: str = Field(min_length=1)
    launch_template_name: str = Field(min_length=1)
    auto_scaling_group_name: str = Field(min_length=1)

    asg_min_size: int = Field(ge=0)
    asg_max_size: int = Field(gt=0)
    asg_default_cool_down_period: int = Field(ge=0)
    health_check_grace_period: int = Field(ge=0)

    cool_down_period_scale_out: int = Field(ge=0)
    cool_down_period_scale_in: int = Field(ge=0)
    scale_out_adjustment: int
    scale_in_adjustment: int

    cpu_upper_threshold: float = Field(ge=0, le=100)
    cpu_lower_threshold: float = Field(ge=0, le=100)
    alarm_period: int = Field(gt=0)
    alarm_evaluation_periods_scale_out: int = Field(gt=0)
    alarm_evaluation_periods_scale_in: int = Field(gt=0)

    @model_validator(mode='after')
    def check_consistency(self):
        if self.asg_min_size > self.asg_max_size:
            raise ValueError(
                f"asg_min_size ({self.asg_min_size}) exceeds asg_max_size ({self.asg_max_size})"
            )
        if self.cpu_lower_threshold >= self.cpu_upper_threshold:
            raise ValueError("cpu_lower_threshold must be below cpu_upper_threshold")
        if self.scale_out_adjustment <= 0:
            raise ValueError("scale_out_adjustment must be positive")
        if self.scale_in_adjustment >= 0:
            raise ValueError("scale_in_adjustment must be negative")
        return self

    @property
    def scale_out_policy_name(self) -> str:
        return f"{self.auto_scaling_group_name}-scale-out-policy"

    @property
    def scale_in_policy_name(self) -> str:
        return f"{self.auto_scaling_group_name}-scale-in-policy"

    @property
    def high_cpu_alarm_name(self) -> str:
        return f"{self.auto_scaling_group_name}-high-cpu-alarm"

    @property
    def low_cpu_alarm_name(self) -> str:
        return f"{self.auto_scaling_group_name}-low-cpu-alarm"


def load_lab_config(path: Union[str, Path], model: Type[ConfigT]) -> ConfigT:
    """Load and validate a lab configuration file.

    Args:
        path: Path of the JSON file
        model: Pydantic model describing the file

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: if the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    try:
        config = model.model_validate_json(content)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e

    logger.debug(f"Loaded {model.__name__} from {path}")
    return config
