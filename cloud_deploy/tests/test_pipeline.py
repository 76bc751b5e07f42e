"""Behavioural tests for the deployment pipeline.

The stages run against in-memory collaborators sharing one call log so the
tests can assert ordering and short-circuiting across stage boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from cloud_deploy._artifact_builder import ArtifactBuilder
from cloud_deploy._database_stage import DatabaseStage
from cloud_deploy._deploy_errors import (
    BuildError,
    ConfigurationError,
    DatabaseError,
    DeploymentError,
    StorageError,
)
from cloud_deploy._deploy_models import (
    DatabaseCredentials,
    DeploymentSpec,
    PipelinePhase,
)
from cloud_deploy._deployment_stage import DeploymentStage
from cloud_deploy._pipeline import (
    STAGE_BANNERS,
    UPLOAD_BANNER,
    Pipeline,
    raise_for_failure,
)
from cloud_deploy._storage_stage import StorageStage
from cloud_deploy.tests._fakes import (
    FakeDatabaseService,
    FakeHost,
    FakeRunner,
    FakeStorage,
)


@dataclass
class Harness:
    """Pipeline wired to fakes plus the shared call log."""

    pipeline: Pipeline
    calls: list[str]
    banners: list[str]
    runner: FakeRunner
    storage: FakeStorage
    database: FakeDatabaseService
    host: FakeHost


def _make_spec(project_dir: Path, **overrides: object) -> DeploymentSpec:
    defaults: dict[str, object] = {
        "application_name": "shop",
        "environment_name": "shop-env",
        "bucket_name": "shop-artifacts",
        "instance_type": "t3.small",
        "region": "eu-west-1",
        "database_name": "mydb",
        "database_instance_class": "db.t3.micro",
        "database_engine": "mysql",
        "build_tool": "maven",
        "credentials": DatabaseCredentials("admin", "s3cret"),
        "project_dir": project_dir,
    }
    defaults.update(overrides)
    return DeploymentSpec(**defaults)


def _make_harness(tmp_path: Path, **fakes: object) -> Harness:
    calls: list[str] = []
    banners: list[str] = []
    war = tmp_path / "target" / "app-1.war"
    war.parent.mkdir(parents=True, exist_ok=True)
    war.write_bytes(b"PK")

    runner = fakes.get("runner") or FakeRunner(calls)
    storage = fakes.get("storage") or FakeStorage(calls)
    database = fakes.get("database") or FakeDatabaseService(calls)
    host = fakes.get("host") or FakeHost(calls)
    for fake in (runner, storage, database, host):
        fake.calls = calls  # type: ignore[attr-defined]

    pipeline = Pipeline(
        ArtifactBuilder(tmp_path, runner=runner, on_output=lambda _l: None),  # type: ignore[arg-type]
        StorageStage(storage, tmp_path),  # type: ignore[arg-type]
        DatabaseStage(database, poll_interval=0.0, sleep=lambda _s: None),  # type: ignore[arg-type]
        DeploymentStage(host),  # type: ignore[arg-type]
        stream=banners.append,
    )
    return Harness(pipeline, calls, banners, runner, storage, database, host)  # type: ignore[arg-type]


def test_end_to_end_mysql_deployment_succeeds(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)
    spec = _make_spec(tmp_path)

    outcome = harness.pipeline.run(spec)

    assert outcome.succeeded is True
    state = outcome.state
    assert state.phase is PipelinePhase.SUCCEEDED
    assert state.failure is None
    assert state.artifact is not None and state.artifact.key == "app-1.war"
    assert state.database_url == "jdbc:mysql://host:3306/mydb"
    assert outcome.config is not None
    assert outcome.config.bucket_name == spec.bucket_name
    assert outcome.config.instance_type == spec.instance_type
    assert harness.host.versions[0][2:] == ("shop-artifacts", "app-1.war")


def test_stages_run_in_fixed_order(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)

    harness.pipeline.run(_make_spec(tmp_path))

    order = [
        harness.calls.index(name)
        for name in (
            "build",
            "bucket_exists",
            "upload_file",
            "create_instance:mysql",
            "describe_instance",
            "create_environment",
        )
    ]
    assert order == sorted(order), f"Unexpected call order: {harness.calls}"
    banners = set(STAGE_BANNERS.values()) | {UPLOAD_BANNER}
    assert [line for line in harness.banners if line in banners] == [
        "Building application",
        "Create S3 bucket",
        "Upload WAR to S3",
        "Create database",
        "Waiting for database (This may take several minutes)",
        "Create/Update application",
    ]


def test_unsupported_engine_fails_before_any_stage(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)

    outcome = harness.pipeline.run(_make_spec(tmp_path, database_engine="oracle"))

    assert outcome.state.phase is PipelinePhase.FAILED
    failure = outcome.state.failure
    assert failure is not None
    assert failure.stage is PipelinePhase.INIT
    assert "deployment for this database is not possible" in failure.message
    assert harness.calls == [], "No build or cloud calls may happen"
    assert harness.banners == []
    assert outcome.config is None


@pytest.mark.parametrize("engine", ["oracle", "mssql", "mongodb", "h2Disk", ""])
def test_every_unsupported_engine_raises_configuration_error(
    tmp_path: Path, engine: str
) -> None:
    harness = _make_harness(tmp_path)

    outcome = harness.pipeline.run(_make_spec(tmp_path, database_engine=engine))

    with pytest.raises(ConfigurationError):
        raise_for_failure(outcome)
    assert harness.calls == []


def test_build_failure_short_circuits(tmp_path: Path) -> None:
    runner = FakeRunner([], return_code=1, stderr="compile error")
    harness = _make_harness(tmp_path, runner=runner)

    outcome = harness.pipeline.run(_make_spec(tmp_path))

    failure = outcome.state.failure
    assert failure is not None
    assert failure.stage is PipelinePhase.BUILDING
    assert failure.message == "compile error"
    assert harness.calls == ["build"], "No storage, database or deployment calls"
    with pytest.raises(BuildError, match="compile error"):
        raise_for_failure(outcome)


def test_storage_failure_stops_before_database(tmp_path: Path) -> None:
    storage = FakeStorage([], create_error="BucketAlreadyExists")
    harness = _make_harness(tmp_path, storage=storage)

    outcome = harness.pipeline.run(_make_spec(tmp_path))

    assert outcome.state.failure is not None
    assert outcome.state.failure.stage is PipelinePhase.STAGING_ARTIFACT
    assert not any(call.startswith("create_instance") for call in harness.calls)
    with pytest.raises(StorageError):
        raise_for_failure(outcome)


def test_database_never_ready_skips_deployment(tmp_path: Path) -> None:
    database = FakeDatabaseService([], statuses=("creating", "failed"))
    harness = _make_harness(tmp_path, database=database)

    outcome = harness.pipeline.run(_make_spec(tmp_path))

    failure = outcome.state.failure
    assert failure is not None
    assert failure.stage is PipelinePhase.RESOLVING_DATABASE_URL
    assert outcome.state.database_url is None
    assert harness.host.calls.count("application_exists") == 0
    assert not any("environment" in call for call in harness.calls)
    with pytest.raises(DatabaseError):
        raise_for_failure(outcome)


def test_postgres_is_renamed_only_for_url_resolution(tmp_path: Path) -> None:
    database = FakeDatabaseService([], port=5432)
    harness = _make_harness(tmp_path, database=database)

    outcome = harness.pipeline.run(_make_spec(tmp_path, database_engine="postgresql"))

    assert outcome.succeeded is True
    assert "create_instance:postgres" in harness.calls
    assert database.requests[0].engine.value == "postgres"
    assert outcome.state.database_url == "jdbc:postgresql://host:5432/mydb"


def test_deployment_failure_is_terminal(tmp_path: Path) -> None:
    host = FakeHost([], error="Environment shop-env is in an invalid state")
    harness = _make_harness(tmp_path, host=host)

    outcome = harness.pipeline.run(_make_spec(tmp_path))

    failure = outcome.state.failure
    assert failure is not None
    assert failure.stage is PipelinePhase.DEPLOYING
    assert failure.message == "Environment shop-env is in an invalid state"
    assert outcome.state.artifact is not None, "Earlier results are kept"
    assert outcome.state.database_url is not None
    with pytest.raises(DeploymentError):
        raise_for_failure(outcome)


def test_raise_for_failure_ignores_success(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)

    raise_for_failure(harness.pipeline.run(_make_spec(tmp_path)))


def test_stage_outcomes_reach_the_operator_stream(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)

    harness.pipeline.run(_make_spec(tmp_path))

    lines = harness.banners
    assert lines.index("Create S3 bucket") < lines.index("Bucket shop-artifacts created")
    assert lines.index("Bucket shop-artifacts created") < lines.index("Upload WAR to S3")
    assert "Uploaded app-1.war to s3://shop-artifacts/app-1.war" in lines
    assert "Database instance mydb requested" in lines
    assert "Database mydb is available" in lines
    assert any(line.startswith("Environment shop-env created") for line in lines)


def test_existing_bucket_is_reported_as_reused(tmp_path: Path) -> None:
    storage = FakeStorage([], buckets={"shop-artifacts"})
    harness = _make_harness(tmp_path, storage=storage)

    harness.pipeline.run(_make_spec(tmp_path))

    assert "Bucket shop-artifacts already exists" in harness.banners
    assert "create_bucket" not in harness.calls


def test_profile_with_control_character_fails_the_build_stage(tmp_path: Path) -> None:
    harness = _make_harness(tmp_path)
    harness.pipeline.builder = ArtifactBuilder(tmp_path, on_output=lambda _l: None)

    outcome = harness.pipeline.run(_make_spec(tmp_path, profile="prod\nx"))

    assert outcome.state.phase is PipelinePhase.FAILED
    failure = outcome.state.failure
    assert failure is not None
    assert failure.stage is PipelinePhase.BUILDING
    assert "invalid control character" in failure.message
    assert harness.calls == [], "No storage, database or deployment calls"
    with pytest.raises(BuildError):
        raise_for_failure(outcome)
