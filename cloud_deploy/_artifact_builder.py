"""Build the deployable application artifact.

Runs the project's build tool with a profile and streams its output to an
observer while the build runs. The pipeline does not move on until the
process exits.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from cloud_deploy._commands import CommandResult, stream_command
from cloud_deploy._deploy_errors import CommandError
from cloud_deploy._deploy_models import BuildTool, PipelinePhase, StageResult

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., CommandResult]

# Wrapper script and the executable used when the wrapper is absent.
_BUILD_EXECUTABLES: dict[BuildTool, tuple[str, str]] = {
    BuildTool.MAVEN: ("mvnw", "mvn"),
    BuildTool.GRADLE: ("gradlew", "gradle"),
}


def build_arguments(build_tool: BuildTool, profile: str) -> list[str]:
    """Return the build tool arguments for a packaged build.

    Examples
    --------
    >>> build_arguments(BuildTool.GRADLE, "prod")
    ['-Pprod', 'clean', 'bootWar', '-x', 'test']
    """
    if build_tool is BuildTool.MAVEN:
        return ["-ntp", f"-P{profile}", "clean", "verify", "-DskipTests"]
    return [f"-P{profile}", "clean", "bootWar", "-x", "test"]


def resolve_executable(build_tool: BuildTool, project_dir: Path) -> str:
    """Prefer the project's wrapper script over a globally installed tool."""
    wrapper, fallback = _BUILD_EXECUTABLES[build_tool]
    wrapper_path = project_dir / wrapper
    if wrapper_path.is_file():
        return str(wrapper_path.resolve())
    return fallback


class ArtifactBuilder:
    """Invoke the build process for a project directory."""

    def __init__(
        self,
        project_dir: Path,
        *,
        runner: CommandRunner = stream_command,
        on_output: Callable[[str], object] = print,
    ) -> None:
        self.project_dir = project_dir
        self._runner = runner
        self._on_output = on_output

    def build(self, build_tool: BuildTool, profile: str) -> StageResult[None]:
        """Build the artifact with ``build_tool`` using ``profile``.

        Returns
        -------
        StageResult[None]
            Success when the build exits with status ``0``; otherwise a
            failure carrying the build's error output.
        """
        executable = resolve_executable(build_tool, self.project_dir)
        args = build_arguments(build_tool, profile)
        logger.info("Building with %s (profile %s)", executable, profile)
        try:
            result = self._runner(
                executable,
                *args,
                cwd=self.project_dir,
                on_output=self._on_output,
            )
        except CommandError as exc:
            return StageResult.failed(PipelinePhase.BUILDING, str(exc))

        if not result.success:
            message = result.stderr.strip() or (
                f"build failed with exit status {result.return_code}"
            )
            return StageResult.failed(PipelinePhase.BUILDING, message)
        return StageResult.ok()
