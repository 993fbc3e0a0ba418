"""Exception types for vmetest-core.

This module defines the exception hierarchy used throughout the vmetest
packages. All vmetest exceptions inherit from VmetestError, allowing consumers
to catch all framework-specific errors with a single except clause.

Exception hierarchy:
    VmetestError (base)
    +-- ConfigurationError: Invalid mode, registry, config or vars file
    |   +-- RegistryError: Unknown test name
    +-- ClusterQueryError: Control-plane client failures
    +-- RemoteCommandError: Remote command execution failures
    +-- QuantityError: Unparseable magnitude strings
    +-- ProvisioningError: Provisioning engine could not be launched
"""


class VmetestError(Exception):
    """Base exception for all vmetest errors.

    This is the root of the vmetest exception hierarchy. Catch this to handle
    any framework-specific error.
    """


class ConfigurationError(VmetestError):
    """Raised for invalid configuration.

    This includes an invalid execution mode, a malformed workload registry,
    or a workload config or vars file that does not exist. Configuration
    errors are detected before any workload is started.
    """


class RegistryError(ConfigurationError):
    """Raised when a test name is not present in the workload registry."""

    def __init__(self, name: str, available: tuple[str, ...] = ()) -> None:
        self.name = name
        self.available = available
        message = f"Unknown test: {name}"
        if available:
            message += f" (available: {', '.join(available)})"
        super().__init__(message)


class ClusterQueryError(VmetestError):
    """Raised when a cluster control-plane query fails.

    Common causes include a missing client binary, authentication failures,
    or output that is not valid JSON.
    """


class RemoteCommandError(VmetestError):
    """Raised when a command could not be executed on a remote unit.

    This covers connection failures, authentication failures, timeouts and
    non-zero exit statuses of the remote command.
    """


class QuantityError(ValueError, VmetestError):
    """Raised when a resource magnitude string cannot be parsed."""


class ProvisioningError(VmetestError):
    """Raised when the provisioning engine cannot be launched."""
