"""Exception hierarchy for the deployment pipeline.

Each stage has its own error type so collaborators can signal failures in
domain terms and callers can catch ``DeployError`` when the stage does not
matter.

Exceptions
----------
DeployError
ConfigurationError
CommandError
BuildError
StorageError
DatabaseError
WaitTimeoutError
DeploymentError

Examples
--------
>>> raise StorageError("bucket name already taken")
"""

from __future__ import annotations


class DeployError(Exception):
    """Base error for deployment pipeline failures."""


class ConfigurationError(DeployError):
    """Raised when the deployment inputs cannot be used.

    Detected before any side-effecting stage runs.

    Examples
    --------
    >>> raise ConfigurationError("unsupported database engine 'oracle'")
    """


class CommandError(DeployError):
    """Raised when an external command cannot be started or fails."""


class BuildError(DeployError):
    """Raised when the application build exits unsuccessfully."""


class StorageError(DeployError):
    """Raised when bucket creation or artifact upload fails."""


class DatabaseError(DeployError):
    """Raised when provisioning fails or the instance never becomes ready."""


class WaitTimeoutError(DatabaseError):
    """Raised when a configured readiness timeout expires."""


class DeploymentError(DeployError):
    """Raised when the hosted application cannot be created or updated."""
