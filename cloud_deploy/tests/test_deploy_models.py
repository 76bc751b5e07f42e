"""Unit tests for the deployment data model."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from cloud_deploy._deploy_errors import ConfigurationError
from cloud_deploy._deploy_models import (
    BuildTool,
    DatabaseCredentials,
    DatabaseEngine,
    DeploymentConfig,
    DeploymentSpec,
    PipelinePhase,
    StageResult,
    connection_engine_name,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("mysql", DatabaseEngine.MYSQL),
        ("MySQL", DatabaseEngine.MYSQL),
        ("postgres", DatabaseEngine.POSTGRES),
        ("postgresql", DatabaseEngine.POSTGRES),
        (" PostgreSQL ", DatabaseEngine.POSTGRES),
    ],
)
def test_database_engine_parse_accepts_supported(raw: str, expected: DatabaseEngine) -> None:
    assert DatabaseEngine.parse(raw) is expected, f"{raw!r} should parse"


@pytest.mark.parametrize("raw", ["oracle", "mssql", "mariadb", "", "h2Disk"])
def test_database_engine_parse_rejects_unsupported(raw: str) -> None:
    with pytest.raises(ConfigurationError, match="deployment for this database is not possible"):
        DatabaseEngine.parse(raw)


def test_connection_engine_name_maps_every_engine() -> None:
    assert connection_engine_name(DatabaseEngine.POSTGRES) == "postgresql"
    assert connection_engine_name(DatabaseEngine.MYSQL) == "mysql"
    assert {connection_engine_name(engine) for engine in DatabaseEngine} == {
        "mysql",
        "postgresql",
    }, "Mapping should be total over the engines"


def test_build_tool_parse() -> None:
    assert BuildTool.parse("MAVEN") is BuildTool.MAVEN
    with pytest.raises(ConfigurationError, match="Unsupported build tool"):
        BuildTool.parse("ant")


def test_stage_result_constructors() -> None:
    ok = StageResult.ok("value")
    assert ok.success is True
    assert ok.value == "value"
    assert ok.stage is None

    failed = StageResult.failed(PipelinePhase.BUILDING, "compile error")
    assert failed.success is False
    assert failed.stage is PipelinePhase.BUILDING
    assert failed.message == "compile error"


def test_terminal_phases() -> None:
    terminal = {phase for phase in PipelinePhase if phase.terminal}
    assert terminal == {PipelinePhase.SUCCEEDED, PipelinePhase.FAILED}


def test_credentials_hide_password_from_repr() -> None:
    credentials = DatabaseCredentials(username="admin", password="s3cret")
    assert "s3cret" not in repr(credentials), "Password must not leak via repr"


def test_deployment_spec_is_immutable() -> None:
    spec = DeploymentSpec(
        application_name="shop",
        environment_name="shop-env",
        bucket_name="shop-artifacts",
        instance_type="t3.small",
        region="eu-west-1",
        database_name="shopdb",
        database_instance_class="db.t3.micro",
        database_engine="mysql",
        build_tool="maven",
    )
    with pytest.raises(FrozenInstanceError):
        spec.bucket_name = "other"  # type: ignore[misc]

    config = DeploymentConfig.from_spec(spec)
    assert config.bucket_name == "shop-artifacts"
    assert config.instance_type == "t3.small"
    assert config.region == "eu-west-1"
    assert config.base_name == "shop", "Base name falls back to the application name"
    assert (config.build_tool, config.database_engine) == ("maven", "mysql")
