"""Provision the managed database and resolve its connection URL.

Provisioning returns as soon as the request is accepted; the instance then
takes several minutes to become available. ``resolve_url`` polls the
instance until it is ready or reaches a state it cannot recover from.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from cloud_deploy._deploy_errors import DatabaseError
from cloud_deploy._deploy_models import (
    DatabaseEngine,
    DatabaseInstance,
    DatabaseRequest,
    DeploymentSpec,
    PipelinePhase,
    StageResult,
)
from cloud_deploy._providers import DatabaseService
from cloud_deploy._waiting import wait_until

logger = logging.getLogger(__name__)

READY_STATUS = "available"
FAILED_STATUSES = frozenset(
    {
        "deleting",
        "failed",
        "inaccessible-encryption-credentials",
        "incompatible-network",
        "incompatible-option-group",
        "incompatible-parameters",
        "incompatible-restore",
        "restore-error",
        "storage-full",
    }
)


def build_database_url(engine_name: str, instance: DatabaseInstance) -> str:
    """Return the JDBC URL for ``instance``.

    Examples
    --------
    >>> instance = DatabaseInstance("mydb", "available", "mysql", "db.t3.micro", "host", 3306)
    >>> build_database_url("mysql", instance)
    'jdbc:mysql://host:3306/mydb'
    """
    if not instance.address or instance.port is None:
        msg = f"Database {instance.name!r} has no endpoint yet"
        raise DatabaseError(msg)
    return f"jdbc:{engine_name}://{instance.address}:{instance.port}/{instance.name}"


def _check_existing(instance: DatabaseInstance, request: DatabaseRequest) -> None:
    """Refuse to reuse an instance whose engine or class differs."""
    mismatches = []
    if instance.engine != request.engine.value:
        mismatches.append(f"engine {instance.engine!r} != {request.engine.value!r}")
    if instance.instance_class != request.instance_class:
        mismatches.append(
            f"instance class {instance.instance_class!r} != {request.instance_class!r}"
        )
    if mismatches:
        msg = (
            f"Database {request.name!r} already exists with different settings: "
            + "; ".join(mismatches)
        )
        raise DatabaseError(msg)


class DatabaseStage:
    """Create or reuse a database instance and wait for it to be usable."""

    def __init__(
        self,
        service: DatabaseService,
        *,
        poll_interval: float = 30.0,
        timeout: float | None = None,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        self._service = service
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep

    def create_database(self, spec: DeploymentSpec) -> StageResult[None]:
        """Request the instance described by ``spec``.

        An existing instance with the same name is reused as long as its
        engine and instance class match the request.
        """
        try:
            request = DatabaseRequest(
                name=spec.database_name,
                instance_class=spec.database_instance_class,
                engine=DatabaseEngine.parse(spec.database_engine),
                credentials=spec.credentials,
            )
            if self._service.create_instance(request):
                return StageResult.ok(
                    message=f"Database instance {request.name} requested"
                )
            existing = self._service.describe_instance(request.name)
            if existing is None:
                msg = (
                    f"Database {request.name!r} was reported as existing "
                    "but cannot be described"
                )
                raise DatabaseError(msg)
            _check_existing(existing, request)
        except DatabaseError as exc:
            return StageResult.failed(PipelinePhase.PROVISIONING_DATABASE, str(exc))
        return StageResult.ok(
            message=f"Database instance {request.name} already exists"
        )

    def _is_ready(self, name: str) -> bool:
        instance = self._service.describe_instance(name)
        if instance is None:
            msg = f"Database {name!r} does not exist"
            raise DatabaseError(msg)
        if instance.status in FAILED_STATUSES:
            msg = f"Database {name!r} entered terminal state {instance.status!r}"
            raise DatabaseError(msg)
        logger.debug("Database %s status: %s", name, instance.status)
        return instance.status == READY_STATUS

    def resolve_url(self, name: str, engine_name: str) -> StageResult[str]:
        """Wait for ``name`` to become available and return its JDBC URL.

        Parameters
        ----------
        name
            Database instance identifier.
        engine_name
            Engine name as used in connection strings (``postgresql``, not
            ``postgres``).
        """
        try:
            wait_until(
                lambda: self._is_ready(name),
                interval=self.poll_interval,
                timeout=self.timeout,
                description=f"database {name}",
                sleep=self._sleep,
            )
            instance = self._service.describe_instance(name)
            if instance is None:
                msg = f"Database {name!r} disappeared while resolving its endpoint"
                raise DatabaseError(msg)
            url = build_database_url(engine_name, instance)
        except DatabaseError as exc:
            return StageResult.failed(PipelinePhase.RESOLVING_DATABASE_URL, str(exc))
        return StageResult.ok(url, message=f"Database {name} is available")
