#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "boto3"]
# ///
"""Build and deploy the application to AWS.

This command:
- resolves deployment inputs from CLI flags, environment variables, and the
  saved deployment config of a previous run;
- builds the WAR with the project's build tool;
- uploads it to S3, provisions (or reuses) the RDS database, and waits for it;
- creates or updates the Elastic Beanstalk application and environment; and
- saves the deployment config so the next run updates the same resources.

Examples
--------
>>> cloud-deploy --base-name shop --build-tool maven --database-type mysql
"""

from __future__ import annotations

import logging
import math
import re
import sys
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from cloud_deploy._artifact_builder import ArtifactBuilder
from cloud_deploy._aws_providers import (
    BeanstalkHost,
    RdsDatabaseService,
    S3Storage,
    create_aws_clients,
)
from cloud_deploy._database_stage import DatabaseStage
from cloud_deploy._deploy_config import DEFAULT_CONFIG_FILE, load_config, save_config
from cloud_deploy._deploy_errors import ConfigurationError, DeployError
from cloud_deploy._deploy_models import DatabaseCredentials, DeploymentSpec
from cloud_deploy._deployment_stage import DeploymentStage
from cloud_deploy._input_resolution import InputResolution, resolve_input
from cloud_deploy._pipeline import Pipeline, raise_for_failure
from cloud_deploy._storage_stage import StorageStage

app = App(help="Build the application and deploy it to AWS.")
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RawDeployInputs:
    """Raw deployment inputs from the CLI."""

    base_name: str | None = None
    build_tool: str | None = None
    database_type: str | None = None
    application_name: str | None = None
    environment_name: str | None = None
    bucket_name: str | None = None
    instance_type: str | None = None
    region: str | None = None
    database_name: str | None = None
    database_instance_class: str | None = None
    database_username: str | None = None
    database_password: str | None = None
    profile: str | None = None
    project_dir: Path | None = None
    db_poll_interval: str | None = None
    db_wait_timeout: str | None = None
    aws_profile: str | None = None


@dataclass(frozen=True, slots=True)
class DeployInputs:
    """Resolved inputs for one deployment run."""

    spec: DeploymentSpec
    db_poll_interval: float
    db_wait_timeout: float | None
    aws_profile: str | None


def _default_database_name(base_name: str) -> str:
    """Derive an RDS database name from the project name.

    Examples
    --------
    >>> _default_database_name("my-shop")
    'myshop'
    """
    return re.sub(r"[^a-z0-9]", "", base_name.lower()) or "appdb"


def _parse_seconds(value: str | Path | None, env_key: str) -> float | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        seconds = float(str(value))
    except ValueError as exc:
        msg = f"{env_key} must be a number of seconds, got: {value!r}"
        raise SystemExit(msg) from exc
    if not math.isfinite(seconds):
        msg = f"{env_key} must be a finite number of seconds, got: {value!r}"
        raise SystemExit(msg)
    if seconds < 0:
        msg = f"{env_key} must not be negative"
        raise SystemExit(msg)
    return seconds


def _resolve_credentials(
    raw: RawDeployInputs,
    env: cabc.Mapping[str, str] | None,
) -> DatabaseCredentials | None:
    username = resolve_input(
        raw.database_username, InputResolution(env_key="DB_USERNAME"), env=env
    )
    password = resolve_input(
        raw.database_password, InputResolution(env_key="DB_PASSWORD"), env=env
    )
    if username is None and password is None:
        return None
    if username is None or password is None:
        msg = "DB_USERNAME and DB_PASSWORD must be provided together"
        raise SystemExit(msg)
    return DatabaseCredentials(username=str(username), password=str(password))


def resolve_deploy_inputs(
    raw: RawDeployInputs,
    saved: cabc.Mapping[str, str],
    env: cabc.Mapping[str, str] | None = None,
) -> DeployInputs:
    """Resolve deployment inputs from CLI, environment, saved config, defaults."""

    def _resolved(value: str | Path | None, resolution: InputResolution) -> str:
        return str(resolve_input(value, resolution, env=env, saved=saved))

    base_name = _resolved(
        raw.base_name,
        InputResolution(env_key="BASE_NAME", config_key="base_name", required=True),
    )
    build_tool = _resolved(
        raw.build_tool,
        InputResolution(env_key="BUILD_TOOL", config_key="build_tool", required=True),
    )
    database_type = _resolved(
        raw.database_type,
        InputResolution(
            env_key="PROD_DATABASE_TYPE",
            config_key="database_engine",
            required=True,
        ),
    )
    application_name = _resolved(
        raw.application_name,
        InputResolution(
            env_key="APPLICATION_NAME",
            config_key="application_name",
            default=base_name,
        ),
    )
    environment_name = _resolved(
        raw.environment_name,
        InputResolution(
            env_key="ENVIRONMENT_NAME",
            config_key="environment_name",
            default=f"{application_name}-env",
        ),
    )
    bucket_name = _resolved(
        raw.bucket_name,
        InputResolution(
            env_key="BUCKET_NAME",
            config_key="bucket_name",
            default=f"{application_name.lower()}-artifacts",
        ),
    )
    instance_type = _resolved(
        raw.instance_type,
        InputResolution(
            env_key="INSTANCE_TYPE", config_key="instance_type", default="t3.small"
        ),
    )
    region = _resolved(
        raw.region,
        InputResolution(env_key="AWS_REGION", config_key="region", default="us-east-1"),
    )
    database_name = _resolved(
        raw.database_name,
        InputResolution(
            env_key="DB_NAME",
            config_key="database_name",
            default=_default_database_name(base_name),
        ),
    )
    database_instance_class = _resolved(
        raw.database_instance_class,
        InputResolution(
            env_key="DB_INSTANCE_CLASS",
            config_key="database_instance_class",
            default="db.t3.micro",
        ),
    )
    profile = _resolved(
        raw.profile, InputResolution(env_key="BUILD_PROFILE", default="prod")
    )
    project_dir = resolve_input(
        raw.project_dir,
        InputResolution(env_key="PROJECT_DIR", default=Path(), as_path=True),
        env=env,
    )
    poll_interval = _parse_seconds(
        resolve_input(
            raw.db_poll_interval,
            InputResolution(env_key="DB_POLL_INTERVAL", default="30"),
            env=env,
        ),
        "DB_POLL_INTERVAL",
    )
    wait_timeout = _parse_seconds(
        resolve_input(
            raw.db_wait_timeout, InputResolution(env_key="DB_WAIT_TIMEOUT"), env=env
        ),
        "DB_WAIT_TIMEOUT",
    )
    aws_profile = resolve_input(
        raw.aws_profile, InputResolution(env_key="AWS_PROFILE"), env=env
    )

    spec = DeploymentSpec(
        application_name=application_name,
        environment_name=environment_name,
        bucket_name=bucket_name,
        instance_type=instance_type,
        region=region,
        database_name=database_name,
        database_instance_class=database_instance_class,
        database_engine=database_type,
        build_tool=build_tool,
        credentials=_resolve_credentials(raw, env),
        profile=profile,
        project_dir=Path(project_dir) if project_dir is not None else Path(),
        base_name=base_name,
    )
    return DeployInputs(
        spec=spec,
        db_poll_interval=poll_interval if poll_interval is not None else 30.0,
        db_wait_timeout=wait_timeout,
        aws_profile=str(aws_profile) if aws_profile else None,
    )


def build_pipeline(inputs: DeployInputs) -> Pipeline:
    """Wire the AWS collaborators into a pipeline for ``inputs``."""
    spec = inputs.spec
    clients = create_aws_clients(spec.region, profile_name=inputs.aws_profile)
    return Pipeline(
        ArtifactBuilder(spec.project_dir),
        StorageStage(S3Storage(clients.s3, region=spec.region), spec.project_dir),
        DatabaseStage(
            RdsDatabaseService(clients.rds),
            poll_interval=inputs.db_poll_interval,
            timeout=inputs.db_wait_timeout,
        ),
        DeploymentStage(BeanstalkHost(clients.elasticbeanstalk)),
    )


@app.default
def main(
    *,
    base_name: Annotated[str | None, Parameter(help="Project base name.")] = None,
    build_tool: Annotated[str | None, Parameter(help="maven or gradle.")] = None,
    database_type: Annotated[
        str | None, Parameter(help="Production database: mysql or postgresql.")
    ] = None,
    application_name: str | None = None,
    environment_name: str | None = None,
    bucket_name: str | None = None,
    instance_type: str | None = None,
    region: str | None = None,
    database_name: str | None = None,
    database_instance_class: str | None = None,
    database_username: str | None = None,
    database_password: str | None = None,
    profile: str | None = None,
    project_dir: Path | None = None,
    config_file: Path | None = None,
    db_poll_interval: str | None = None,
    db_wait_timeout: str | None = None,
    aws_profile: str | None = None,
    verbose: bool = False,
) -> int:
    """Deploy the application to AWS Elastic Beanstalk.

    Inputs not given on the command line are read from environment
    variables, then from the saved deployment config, then defaults.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config_path = resolve_input(
        config_file,
        InputResolution(
            env_key="DEPLOY_CONFIG_FILE", default=DEFAULT_CONFIG_FILE, as_path=True
        ),
    )
    config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_FILE
    try:
        saved = load_config(config_path)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if saved:
        print(
            "This is an existing deployment, using the configuration from "
            f"{config_path} to deploy your application..."
        )

    raw_inputs = RawDeployInputs(
        base_name=base_name,
        build_tool=build_tool,
        database_type=database_type,
        application_name=application_name,
        environment_name=environment_name,
        bucket_name=bucket_name,
        instance_type=instance_type,
        region=region,
        database_name=database_name,
        database_instance_class=database_instance_class,
        database_username=database_username,
        database_password=database_password,
        profile=profile,
        project_dir=project_dir,
        db_poll_interval=db_poll_interval,
        db_wait_timeout=db_wait_timeout,
        aws_profile=aws_profile,
    )
    inputs = resolve_deploy_inputs(raw_inputs, saved)

    outcome = build_pipeline(inputs).run(inputs.spec)
    try:
        raise_for_failure(outcome)
    except DeployError as exc:
        failure = outcome.state.failure
        stage = failure.stage if failure is not None else "unknown"
        print(f"error: {stage}: {exc}", file=sys.stderr)
        logger.debug("Deployment failed with %s", type(exc).__name__)
        return 1

    if outcome.config is not None:
        save_config(config_path, outcome.config)
    print("\nDeployment complete.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
