"""AWS implementations of the pipeline collaborators.

S3 stores the artifact, RDS hosts the database, and Elastic Beanstalk runs
the application. Provider failures are re-raised as the matching domain
error with the AWS message.

Examples
--------
>>> clients = create_aws_clients(region="eu-west-1")
>>> storage = S3Storage(clients.s3, region="eu-west-1")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from cloud_deploy._deploy_errors import DatabaseError, DeploymentError, StorageError
from cloud_deploy._deploy_models import DatabaseInstance, DatabaseRequest

logger = logging.getLogger(__name__)

DEFAULT_ALLOCATED_STORAGE_GB = 5
DEFAULT_SOLUTION_STACK_PATTERN = r"^64bit Amazon Linux .* running Tomcat"
_MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})


@dataclass(frozen=True, slots=True)
class AwsClients:
    """boto3 clients sharing one session."""

    s3: Any
    rds: Any
    elasticbeanstalk: Any


def create_aws_clients(
    region: str,
    *,
    profile_name: str | None = None,
) -> AwsClients:
    """Create the S3, RDS and Elastic Beanstalk clients for ``region``.

    Credentials follow the standard boto3 chain unless ``profile_name``
    selects a named profile.
    """
    session = boto3.session.Session(region_name=region, profile_name=profile_name)
    return AwsClients(
        s3=session.client("s3"),
        rds=session.client("rds"),
        elasticbeanstalk=session.client("elasticbeanstalk"),
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _error_message(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        message = error.get("Message") or error.get("Code")
        if message:
            return str(message)
    return str(exc)


class S3Storage:
    """Object storage backed by Amazon S3."""

    def __init__(self, client: Any, region: str) -> None:
        self._client = client
        self.region = region

    def bucket_exists(self, name: str) -> bool:
        try:
            self._client.head_bucket(Bucket=name)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_BUCKET_CODES:
                return False
            if _error_code(exc) in {"403", "AccessDenied"}:
                msg = f"Bucket {name!r} exists but is owned by another account"
                raise StorageError(msg) from exc
            raise StorageError(_error_message(exc)) from exc
        except BotoCoreError as exc:
            raise StorageError(_error_message(exc)) from exc
        return True

    def create_bucket(self, name: str) -> None:
        params: dict[str, Any] = {"Bucket": name}
        # us-east-1 rejects an explicit location constraint.
        if self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._client.create_bucket(**params)
        except ClientError as exc:
            if _error_code(exc) == "BucketAlreadyOwnedByYou":
                return
            raise StorageError(_error_message(exc)) from exc
        except BotoCoreError as exc:
            raise StorageError(_error_message(exc)) from exc

    def upload_file(self, path: Path, bucket: str, key: str) -> None:
        try:
            self._client.upload_file(str(path), bucket, key)
        except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
            msg = f"Upload of {path.name} failed: {_error_message(exc)}"
            raise StorageError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read artifact {path}: {exc}"
            raise StorageError(msg) from exc


class RdsDatabaseService:
    """Managed databases backed by Amazon RDS."""

    def __init__(
        self,
        client: Any,
        *,
        allocated_storage: int = DEFAULT_ALLOCATED_STORAGE_GB,
    ) -> None:
        self._client = client
        self.allocated_storage = allocated_storage

    def create_instance(self, request: DatabaseRequest) -> bool:
        params: dict[str, Any] = {
            "DBInstanceIdentifier": request.name,
            "DBName": request.name,
            "DBInstanceClass": request.instance_class,
            "Engine": request.engine.value,
            "AllocatedStorage": self.allocated_storage,
            "PubliclyAccessible": True,
            "MultiAZ": False,
        }
        if request.credentials is not None:
            params["MasterUsername"] = request.credentials.username
            params["MasterUserPassword"] = request.credentials.password
        try:
            self._client.create_db_instance(**params)
        except ClientError as exc:
            if _error_code(exc) == "DBInstanceAlreadyExists":
                return False
            raise DatabaseError(_error_message(exc)) from exc
        except BotoCoreError as exc:
            raise DatabaseError(_error_message(exc)) from exc
        return True

    def describe_instance(self, name: str) -> DatabaseInstance | None:
        try:
            response = self._client.describe_db_instances(DBInstanceIdentifier=name)
        except ClientError as exc:
            if _error_code(exc) == "DBInstanceNotFound":
                return None
            raise DatabaseError(_error_message(exc)) from exc
        except BotoCoreError as exc:
            raise DatabaseError(_error_message(exc)) from exc

        instances = response.get("DBInstances", [])
        if not instances:
            return None
        instance = instances[0]
        endpoint = instance.get("Endpoint") or {}
        return DatabaseInstance(
            name=instance.get("DBInstanceIdentifier", name),
            status=instance.get("DBInstanceStatus", "unknown"),
            engine=instance.get("Engine", ""),
            instance_class=instance.get("DBInstanceClass", ""),
            address=endpoint.get("Address"),
            port=endpoint.get("Port"),
        )


class BeanstalkHost:
    """Application hosting backed by AWS Elastic Beanstalk."""

    def __init__(
        self,
        client: Any,
        *,
        solution_stack: str | None = None,
        solution_stack_pattern: str = DEFAULT_SOLUTION_STACK_PATTERN,
    ) -> None:
        self._client = client
        self._solution_stack = solution_stack
        self._solution_stack_pattern = re.compile(solution_stack_pattern)

    def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        logger.debug("elasticbeanstalk %s", operation)
        try:
            return getattr(self._client, operation)(**params)
        except (ClientError, BotoCoreError) as exc:
            raise DeploymentError(_error_message(exc)) from exc

    def solution_stack(self) -> str:
        """Return the configured stack or the newest matching Tomcat stack."""
        if self._solution_stack is not None:
            return self._solution_stack
        response = self._call("list_available_solution_stacks")
        for stack in response.get("SolutionStacks", []):
            if self._solution_stack_pattern.search(stack):
                self._solution_stack = stack
                return stack
        msg = (
            "No solution stack matches "
            f"{self._solution_stack_pattern.pattern!r}"
        )
        raise DeploymentError(msg)

    def application_exists(self, application_name: str) -> bool:
        response = self._call(
            "describe_applications", ApplicationNames=[application_name]
        )
        return bool(response.get("Applications"))

    def create_application(self, application_name: str) -> None:
        self._call(
            "create_application",
            ApplicationName=application_name,
            Description=f"{application_name} application",
        )

    def create_application_version(
        self,
        application_name: str,
        version_label: str,
        bucket: str,
        key: str,
    ) -> None:
        self._call(
            "create_application_version",
            ApplicationName=application_name,
            VersionLabel=version_label,
            SourceBundle={"S3Bucket": bucket, "S3Key": key},
            Process=True,
        )

    def environment_status(
        self,
        application_name: str,
        environment_name: str,
    ) -> str | None:
        response = self._call(
            "describe_environments",
            ApplicationName=application_name,
            EnvironmentNames=[environment_name],
            IncludeDeleted=False,
        )
        for environment in response.get("Environments", []):
            status = environment.get("Status")
            if status != "Terminated":
                return status
        return None

    def create_environment(
        self,
        application_name: str,
        environment_name: str,
        version_label: str,
        option_settings: list[dict[str, str]],
    ) -> None:
        self._call(
            "create_environment",
            ApplicationName=application_name,
            EnvironmentName=environment_name,
            VersionLabel=version_label,
            SolutionStackName=self.solution_stack(),
            OptionSettings=option_settings,
        )

    def update_environment(
        self,
        application_name: str,
        environment_name: str,
        version_label: str,
        option_settings: list[dict[str, str]],
    ) -> None:
        self._call(
            "update_environment",
            ApplicationName=application_name,
            EnvironmentName=environment_name,
            VersionLabel=version_label,
            OptionSettings=option_settings,
        )
