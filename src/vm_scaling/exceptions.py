"""Exceptions raised by the vm_scaling package."""


class VMScalingError(Exception):
    """Base class for all vm_scaling errors."""
    pass


class ConfigurationError(VMScalingError):
    """Raised when a lab configuration file is missing or invalid."""
    pass


class ResourceNotFoundError(VMScalingError):
    """Raised when a required AWS resource does not exist."""
    pass


class ResourceTimeoutError(VMScalingError):
    """Raised when a resource does not reach the expected state in time."""
    pass


class LoadGeneratorError(VMScalingError):
    """Raised when the load generator cannot be reached or answers unexpectedly."""
    pass
