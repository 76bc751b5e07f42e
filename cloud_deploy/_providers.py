"""Collaborator contracts used by the pipeline stages.

Stages only talk to these protocols. Implementations raise the domain error
for their concern (``StorageError``, ``DatabaseError``, ``DeploymentError``)
with the provider's message; the stages turn those into failed results.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from cloud_deploy._deploy_models import DatabaseInstance, DatabaseRequest


class ObjectStorage(Protocol):
    """Bucket and object operations."""

    def bucket_exists(self, name: str) -> bool:
        """Return ``True`` when ``name`` exists and is owned by the caller."""
        ...

    def create_bucket(self, name: str) -> None:
        """Create bucket ``name``."""
        ...

    def upload_file(self, path: Path, bucket: str, key: str) -> None:
        """Upload ``path`` to ``bucket`` under ``key``."""
        ...


class DatabaseService(Protocol):
    """Managed relational database operations."""

    def create_instance(self, request: DatabaseRequest) -> bool:
        """Request a new instance.

        Returns ``False`` when an instance with that name already exists.
        """
        ...

    def describe_instance(self, name: str) -> DatabaseInstance | None:
        """Return the instance named ``name`` or ``None`` if it is unknown."""
        ...


class ApplicationHost(Protocol):
    """Application hosting operations."""

    def application_exists(self, application_name: str) -> bool:
        """Return ``True`` when the application is registered."""
        ...

    def create_application(self, application_name: str) -> None:
        """Register a new application."""
        ...

    def create_application_version(
        self,
        application_name: str,
        version_label: str,
        bucket: str,
        key: str,
    ) -> None:
        """Register an application version backed by an uploaded artifact."""
        ...

    def environment_status(
        self,
        application_name: str,
        environment_name: str,
    ) -> str | None:
        """Return the environment status or ``None`` if it does not exist."""
        ...

    def create_environment(
        self,
        application_name: str,
        environment_name: str,
        version_label: str,
        option_settings: list[dict[str, str]],
    ) -> None:
        """Launch a new environment running ``version_label``."""
        ...

    def update_environment(
        self,
        application_name: str,
        environment_name: str,
        version_label: str,
        option_settings: list[dict[str, str]],
    ) -> None:
        """Deploy ``version_label`` to an existing environment."""
        ...
