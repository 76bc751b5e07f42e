"""Create or update the hosted application environment."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable

from cloud_deploy._deploy_errors import DeploymentError
from cloud_deploy._deploy_models import ApplicationParams, PipelinePhase, StageResult
from cloud_deploy._providers import ApplicationHost

logger = logging.getLogger(__name__)

ENVIRONMENT_NAMESPACE = "aws:elasticbeanstalk:application:environment"
LAUNCH_NAMESPACE = "aws:autoscaling:launchconfiguration"
INSTANCE_PROFILE = "aws-elasticbeanstalk-ec2-role"
UPDATABLE_STATUS = "Ready"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def build_option_settings(
    params: ApplicationParams,
    spring_profiles: str = "prod,aws",
) -> list[dict[str, str]]:
    """Return the environment option settings for ``params``.

    Examples
    --------
    >>> params = ApplicationParams("app", "app-env", "bucket", "app.war",
    ...     "jdbc:mysql://db:3306/app", None, "t3.small")
    >>> build_option_settings(params)[1]["Value"]
    'jdbc:mysql://db:3306/app'
    """
    settings = [
        {
            "Namespace": ENVIRONMENT_NAMESPACE,
            "OptionName": "SPRING_PROFILES_ACTIVE",
            "Value": spring_profiles,
        },
        {
            "Namespace": ENVIRONMENT_NAMESPACE,
            "OptionName": "SPRING_DATASOURCE_URL",
            "Value": params.database_url,
        },
    ]
    if params.credentials is not None:
        settings.extend(
            [
                {
                    "Namespace": ENVIRONMENT_NAMESPACE,
                    "OptionName": "SPRING_DATASOURCE_USERNAME",
                    "Value": params.credentials.username,
                },
                {
                    "Namespace": ENVIRONMENT_NAMESPACE,
                    "OptionName": "SPRING_DATASOURCE_PASSWORD",
                    "Value": params.credentials.password,
                },
            ]
        )
    settings.extend(
        [
            {
                "Namespace": LAUNCH_NAMESPACE,
                "OptionName": "InstanceType",
                "Value": params.instance_type,
            },
            {
                "Namespace": LAUNCH_NAMESPACE,
                "OptionName": "IamInstanceProfile",
                "Value": INSTANCE_PROFILE,
            },
        ]
    )
    return settings


class DeploymentStage:
    """Deploy a new application version to the hosting service."""

    def __init__(
        self,
        host: ApplicationHost,
        *,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self._host = host
        self._clock = clock

    def _version_label(self, params: ApplicationParams) -> str:
        # Microseconds keep labels unique for deploys within the same second.
        stamp = self._clock().strftime("%Y%m%d%H%M%S-%f")
        return f"{params.application_name}-{stamp}"

    def _deploy(self, params: ApplicationParams) -> str:
        if not self._host.application_exists(params.application_name):
            logger.info("Creating application %s", params.application_name)
            self._host.create_application(params.application_name)

        version_label = self._version_label(params)
        self._host.create_application_version(
            params.application_name,
            version_label,
            params.bucket_name,
            params.artifact_key,
        )

        settings = build_option_settings(params)
        status = self._host.environment_status(
            params.application_name, params.environment_name
        )
        if status is None:
            logger.info("Creating environment %s", params.environment_name)
            self._host.create_environment(
                params.application_name,
                params.environment_name,
                version_label,
                settings,
            )
            return (
                f"Environment {params.environment_name} created with version "
                f"{version_label}"
            )
        if status != UPDATABLE_STATUS:
            msg = (
                f"Environment {params.environment_name!r} is in state {status!r} "
                "and cannot be updated"
            )
            raise DeploymentError(msg)
        logger.info("Updating environment %s to %s", params.environment_name, version_label)
        self._host.update_environment(
            params.application_name,
            params.environment_name,
            version_label,
            settings,
        )
        return f"Environment {params.environment_name} updated to version {version_label}"

    def create_or_update_application(self, params: ApplicationParams) -> StageResult[None]:
        """Create the application and environment, or update them in place."""
        try:
            message = self._deploy(params)
        except DeploymentError as exc:
            return StageResult.failed(PipelinePhase.DEPLOYING, str(exc))
        return StageResult.ok(message=message)
