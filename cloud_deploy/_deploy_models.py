"""Data models for the deployment pipeline.

These models keep the data flow between stages explicit: each stage receives
the values it needs and returns a ``StageResult`` rather than writing into
shared state.

Examples
--------
>>> DatabaseEngine.parse("PostgreSQL")
<DatabaseEngine.POSTGRES: 'postgres'>
>>> connection_engine_name(DatabaseEngine.POSTGRES)
'postgresql'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, TypeVar

from cloud_deploy._deploy_errors import ConfigurationError

UNSUPPORTED_DATABASE_MESSAGE = "Sorry, deployment for this database is not possible"


class DatabaseEngine(enum.StrEnum):
    """Database engines the pipeline can provision."""

    MYSQL = "mysql"
    POSTGRES = "postgres"

    @classmethod
    def parse(cls, value: str) -> DatabaseEngine:
        """Map a configured engine string onto a supported engine.

        Parameters
        ----------
        value
            Engine name as stored in the project configuration.

        Returns
        -------
        DatabaseEngine
            The matching engine; ``postgresql`` maps to ``POSTGRES``.

        Raises
        ------
        ConfigurationError
            If the engine is not supported.

        Examples
        --------
        >>> DatabaseEngine.parse("mysql")
        <DatabaseEngine.MYSQL: 'mysql'>
        """
        normalized = value.strip().lower()
        if normalized == "postgresql":
            normalized = "postgres"
        try:
            return cls(normalized)
        except ValueError as exc:
            msg = f"{UNSUPPORTED_DATABASE_MESSAGE}: {value!r}"
            raise ConfigurationError(msg) from exc


def connection_engine_name(engine: DatabaseEngine) -> str:
    """Return the engine name used in JDBC connection strings.

    Provisioning and connection strings name PostgreSQL differently.

    Examples
    --------
    >>> connection_engine_name(DatabaseEngine.MYSQL)
    'mysql'
    """
    if engine is DatabaseEngine.POSTGRES:
        return "postgresql"
    return engine.value


class BuildTool(enum.StrEnum):
    """Build tools able to produce a deployable WAR."""

    MAVEN = "maven"
    GRADLE = "gradle"

    @classmethod
    def parse(cls, value: str) -> BuildTool:
        """Return the build tool named by ``value``.

        Examples
        --------
        >>> BuildTool.parse("Gradle")
        <BuildTool.GRADLE: 'gradle'>
        """
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            msg = f"Unsupported build tool: {value!r}"
            raise ConfigurationError(msg) from exc


class PipelinePhase(enum.StrEnum):
    """States of a pipeline run."""

    INIT = "init"
    BUILDING = "building"
    STAGING_ARTIFACT = "staging-artifact"
    PROVISIONING_DATABASE = "provisioning-database"
    RESOLVING_DATABASE_URL = "resolving-database-url"
    DEPLOYING = "deploying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (PipelinePhase.SUCCEEDED, PipelinePhase.FAILED)


@dataclass(frozen=True, slots=True)
class DatabaseCredentials:
    """Master credentials for the managed database."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class DeploymentSpec:
    """Desired deployment, resolved once before the pipeline starts.

    Attributes
    ----------
    application_name, environment_name
        Hosted application and environment to create or update.
    bucket_name
        Bucket that receives the built artifact.
    instance_type
        Instance size for the application environment.
    region
        Cloud region for every resource.
    database_name, database_instance_class
        Managed database identifier and sizing.
    database_engine
        Engine as configured; validated by the pipeline before any stage runs.
    build_tool
        Build tool identifier as configured.
    credentials
        Optional database master credentials.
    profile
        Build profile passed to the build tool.
    project_dir
        Directory holding the application sources.
    base_name
        Project name the other names were derived from; defaults to the
        application name.
    """

    application_name: str
    environment_name: str
    bucket_name: str
    instance_type: str
    region: str
    database_name: str
    database_instance_class: str
    database_engine: str
    build_tool: str
    credentials: DatabaseCredentials | None = None
    profile: str = "prod"
    project_dir: Path = Path()
    base_name: str | None = None


@dataclass(frozen=True, slots=True)
class DatabaseRequest:
    """Provisioning request handed to the database service."""

    name: str
    instance_class: str
    engine: DatabaseEngine
    credentials: DatabaseCredentials | None = None


@dataclass(frozen=True, slots=True)
class DatabaseInstance:
    """Observed state of a managed database instance."""

    name: str
    status: str
    engine: str
    instance_class: str
    address: str | None = None
    port: int | None = None


@dataclass(frozen=True, slots=True)
class ArtifactLocator:
    """Storage location of an uploaded artifact."""

    bucket: str
    key: str


@dataclass(frozen=True, slots=True)
class ApplicationParams:
    """Everything the hosting service needs to run the new artifact."""

    application_name: str
    environment_name: str
    bucket_name: str
    artifact_key: str
    database_url: str
    credentials: DatabaseCredentials | None
    instance_type: str


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class StageResult(Generic[T]):
    """Outcome of one stage call.

    Examples
    --------
    >>> StageResult.ok("jdbc:mysql://db:3306/app").value
    'jdbc:mysql://db:3306/app'
    >>> StageResult.failed(PipelinePhase.BUILDING, "compile error").success
    False
    """

    success: bool
    value: T | None = None
    stage: PipelinePhase | None = None
    message: str = ""

    @classmethod
    def ok(cls, value: T | None = None, message: str = "") -> StageResult[T]:
        """Build a successful result carrying ``value``.

        ``message`` is an optional note for the operator, such as whether a
        resource was created or reused.
        """
        return cls(success=True, value=value, message=message)

    @classmethod
    def failed(cls, stage: PipelinePhase, message: str) -> StageResult[T]:
        """Build a failed result for ``stage``."""
        return cls(success=False, stage=stage, message=message)


@dataclass(frozen=True, slots=True)
class PipelineFailure:
    """Where and why a run stopped."""

    stage: PipelinePhase
    message: str


@dataclass(slots=True)
class PipelineState:
    """Values accumulated by a single pipeline run.

    Owned by the pipeline; each field is written by exactly one stage.
    """

    build_tool: BuildTool | None = None
    artifact: ArtifactLocator | None = None
    database_url: str | None = None
    phase: PipelinePhase = PipelinePhase.INIT
    failure: PipelineFailure | None = None


@dataclass(frozen=True, slots=True)
class DeploymentConfig:
    """Deployment parameters the caller persists for later re-runs."""

    application_name: str
    environment_name: str
    bucket_name: str
    instance_type: str
    region: str
    database_name: str
    database_instance_class: str
    base_name: str
    build_tool: str
    database_engine: str

    @classmethod
    def from_spec(cls, spec: DeploymentSpec) -> DeploymentConfig:
        """Snapshot the persistable part of ``spec``."""
        return cls(
            base_name=spec.base_name or spec.application_name,
            build_tool=spec.build_tool,
            database_engine=spec.database_engine,
            application_name=spec.application_name,
            environment_name=spec.environment_name,
            bucket_name=spec.bucket_name,
            instance_type=spec.instance_type,
            region=spec.region,
            database_name=spec.database_name,
            database_instance_class=spec.database_instance_class,
        )


@dataclass(frozen=True, slots=True)
class PipelineOutcome:
    """Terminal state of a run plus the config snapshot on success."""

    state: PipelineState
    config: DeploymentConfig | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the run reached ``SUCCEEDED``."""
        return self.state.phase is PipelinePhase.SUCCEEDED
