"""Exception hierarchy for the configurator.

Fatal errors stop the run before the report is printed. Everything else raised
inside a provisioning step is recorded in the report and the run continues.
"""

from __future__ import annotations


class ConfiguratorError(Exception):
    """Base class for all configurator errors."""


class FatalError(ConfiguratorError):
    """Aborts the run with a non-zero exit status."""


class ConfigError(FatalError):
    """Raised when configuration is missing or invalid."""


class DatabaseUnavailableError(FatalError):
    """Raised when every connection attempt has failed."""


class PrivilegeCheckError(FatalError):
    """Raised when the superuser check itself cannot be performed."""


class InsufficientPrivilegeError(FatalError):
    """Raised when the connecting role is not a superuser."""


class RoleProvisioningError(FatalError):
    """Raised when the replication role cannot be created or granted."""


class PublicationError(ConfiguratorError):
    """Raised when a dropped publication could not be recreated."""


class RegistrationError(ConfiguratorError):
    """Raised when registration cannot be sent or the endpoint rejects it."""
