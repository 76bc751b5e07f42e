"""Stage the built artifact in object storage."""

from __future__ import annotations

import logging
from pathlib import Path

from cloud_deploy._deploy_errors import StorageError
from cloud_deploy._deploy_models import (
    ArtifactLocator,
    BuildTool,
    PipelinePhase,
    StageResult,
)
from cloud_deploy._providers import ObjectStorage

logger = logging.getLogger(__name__)

ARTIFACT_DIRECTORIES: dict[BuildTool, Path] = {
    BuildTool.MAVEN: Path("target"),
    BuildTool.GRADLE: Path("build") / "libs",
}


def find_artifact(project_dir: Path, build_tool: BuildTool) -> Path:
    """Locate the WAR produced by ``build_tool`` under ``project_dir``.

    Parameters
    ----------
    project_dir
        Root of the built project.
    build_tool
        Build tool whose output directory is searched.

    Returns
    -------
    Path
        Path to the single deployable WAR.

    Raises
    ------
    StorageError
        If no WAR or more than one WAR is present.
    """
    output_dir = project_dir / ARTIFACT_DIRECTORIES[build_tool]
    candidates = sorted(
        path for path in output_dir.glob("*.war") if path.is_file()
    )
    if not candidates:
        msg = f"No WAR file found in {output_dir}"
        raise StorageError(msg)
    if len(candidates) > 1:
        names = ", ".join(path.name for path in candidates)
        msg = f"Expected one WAR file in {output_dir}, found: {names}"
        raise StorageError(msg)
    return candidates[0]


class StorageStage:
    """Ensure the destination bucket and upload the artifact."""

    def __init__(self, storage: ObjectStorage, project_dir: Path) -> None:
        self._storage = storage
        self.project_dir = project_dir

    def ensure_bucket(self, name: str) -> StageResult[None]:
        """Create ``name`` unless it already exists."""
        try:
            if self._storage.bucket_exists(name):
                return StageResult.ok(message=f"Bucket {name} already exists")
            self._storage.create_bucket(name)
        except StorageError as exc:
            return StageResult.failed(PipelinePhase.STAGING_ARTIFACT, str(exc))
        return StageResult.ok(message=f"Bucket {name} created")

    def upload(self, bucket: str, build_tool: BuildTool) -> StageResult[ArtifactLocator]:
        """Upload the artifact for ``build_tool`` and return its locator."""
        try:
            artifact = find_artifact(self.project_dir, build_tool)
            key = artifact.name
            self._storage.upload_file(artifact, bucket, key)
        except StorageError as exc:
            return StageResult.failed(PipelinePhase.STAGING_ARTIFACT, str(exc))
        logger.debug("Uploaded %s", artifact)
        return StageResult.ok(
            ArtifactLocator(bucket=bucket, key=key),
            message=f"Uploaded {key} to s3://{bucket}/{key}",
        )
