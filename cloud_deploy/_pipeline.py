"""Run the deployment stages in order.

The pipeline validates the configuration, then builds the artifact, stages
it in object storage, provisions the database, resolves its URL, and deploys
the application. Each stage's output feeds the next stage's input. The first
failure stops the run; resources created by earlier stages are left in
place.

Examples
--------
>>> pipeline = Pipeline(builder, storage, database, deployment)
>>> outcome = pipeline.run(spec)
>>> outcome.state.phase
<PipelinePhase.SUCCEEDED: 'succeeded'>
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar, cast

from cloud_deploy._artifact_builder import ArtifactBuilder
from cloud_deploy._database_stage import DatabaseStage
from cloud_deploy._deploy_errors import (
    BuildError,
    ConfigurationError,
    DatabaseError,
    DeployError,
    DeploymentError,
    StorageError,
)
from cloud_deploy._deploy_models import (
    ApplicationParams,
    BuildTool,
    DatabaseEngine,
    DeploymentConfig,
    DeploymentSpec,
    PipelineFailure,
    PipelineOutcome,
    PipelinePhase,
    PipelineState,
    StageResult,
    connection_engine_name,
)
from cloud_deploy._deployment_stage import DeploymentStage
from cloud_deploy._storage_stage import StorageStage

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_BANNERS: dict[PipelinePhase, str] = {
    PipelinePhase.BUILDING: "Building application",
    PipelinePhase.STAGING_ARTIFACT: "Create S3 bucket",
    PipelinePhase.PROVISIONING_DATABASE: "Create database",
    PipelinePhase.RESOLVING_DATABASE_URL: (
        "Waiting for database (This may take several minutes)"
    ),
    PipelinePhase.DEPLOYING: "Create/Update application",
}
UPLOAD_BANNER = "Upload WAR to S3"

_FAILURE_ERRORS: dict[PipelinePhase, type[DeployError]] = {
    PipelinePhase.INIT: ConfigurationError,
    PipelinePhase.BUILDING: BuildError,
    PipelinePhase.STAGING_ARTIFACT: StorageError,
    PipelinePhase.PROVISIONING_DATABASE: DatabaseError,
    PipelinePhase.RESOLVING_DATABASE_URL: DatabaseError,
    PipelinePhase.DEPLOYING: DeploymentError,
}


class _StageFailed(Exception):
    """Internal signal carrying the failed stage result."""

    def __init__(self, failure: PipelineFailure) -> None:
        super().__init__(failure.message)
        self.failure = failure


def raise_for_failure(outcome: PipelineOutcome) -> None:
    """Raise the error matching the stage a failed run stopped at.

    Does nothing for a successful run.

    Raises
    ------
    DeployError
        Subclass chosen by the failing stage, e.g. ``BuildError`` for a
        failed build.
    """
    failure = outcome.state.failure
    if failure is None:
        return
    error_type = _FAILURE_ERRORS.get(failure.stage, DeployError)
    raise error_type(failure.message)


class Pipeline:
    """Orchestrate a single deployment run.

    Parameters
    ----------
    builder, storage, database, deployment
        Stage implementations, called in that order.
    stream
        Operator output; receives a banner before each stage starts and
        the note each successful stage reports.
    """

    def __init__(
        self,
        builder: ArtifactBuilder,
        storage: StorageStage,
        database: DatabaseStage,
        deployment: DeploymentStage,
        *,
        stream: Callable[[str], object] = print,
    ) -> None:
        self.builder = builder
        self.storage = storage
        self.database = database
        self.deployment = deployment
        self._stream = stream

    def _announce(self, banner: str) -> None:
        self._stream("")
        self._stream(banner)

    def _enter(self, state: PipelineState, phase: PipelinePhase) -> None:
        state.phase = phase
        self._announce(STAGE_BANNERS[phase])

    def _require(self, state: PipelineState, result: StageResult[T]) -> T:
        if not result.success:
            stage = result.stage or state.phase
            raise _StageFailed(PipelineFailure(stage=stage, message=result.message))
        if result.message:
            self._stream(result.message)
        return cast(T, result.value)

    def _validate(self, spec: DeploymentSpec) -> tuple[BuildTool, DatabaseEngine]:
        try:
            engine = DatabaseEngine.parse(spec.database_engine)
            build_tool = BuildTool.parse(spec.build_tool)
        except ConfigurationError as exc:
            raise _StageFailed(
                PipelineFailure(stage=PipelinePhase.INIT, message=str(exc))
            ) from exc
        return build_tool, engine

    def _execute(self, spec: DeploymentSpec, state: PipelineState) -> None:
        build_tool, engine = self._validate(spec)
        state.build_tool = build_tool

        self._enter(state, PipelinePhase.BUILDING)
        self._require(state, self.builder.build(build_tool, spec.profile))

        self._enter(state, PipelinePhase.STAGING_ARTIFACT)
        self._require(state, self.storage.ensure_bucket(spec.bucket_name))
        self._announce(UPLOAD_BANNER)
        artifact = self._require(state, self.storage.upload(spec.bucket_name, build_tool))
        state.artifact = artifact

        self._enter(state, PipelinePhase.PROVISIONING_DATABASE)
        self._require(state, self.database.create_database(spec))

        self._enter(state, PipelinePhase.RESOLVING_DATABASE_URL)
        database_url = self._require(
            state,
            self.database.resolve_url(spec.database_name, connection_engine_name(engine)),
        )
        state.database_url = database_url

        self._enter(state, PipelinePhase.DEPLOYING)
        params = ApplicationParams(
            application_name=spec.application_name,
            environment_name=spec.environment_name,
            bucket_name=artifact.bucket,
            artifact_key=artifact.key,
            database_url=database_url,
            credentials=spec.credentials,
            instance_type=spec.instance_type,
        )
        self._require(state, self.deployment.create_or_update_application(params))

    def run(self, spec: DeploymentSpec) -> PipelineOutcome:
        """Execute every stage for ``spec`` and return the terminal state.

        Returns
        -------
        PipelineOutcome
            ``SUCCEEDED`` with a config snapshot, or ``FAILED`` with the
            originating stage and its message.
        """
        state = PipelineState()
        try:
            self._execute(spec, state)
        except _StageFailed as exc:
            state.failure = exc.failure
            state.phase = PipelinePhase.FAILED
            logger.debug("Pipeline stopped at %s: %s", exc.failure.stage, exc.failure.message)
            return PipelineOutcome(state=state)

        state.phase = PipelinePhase.SUCCEEDED
        return PipelineOutcome(state=state, config=DeploymentConfig.from_spec(spec))
