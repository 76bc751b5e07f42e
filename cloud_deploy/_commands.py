"""Helpers for running external commands through plumbum."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from plumbum import CommandNotFound, local
from plumbum.commands.processes import BY_POSITION, iter_lines

from cloud_deploy._deploy_errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a streamed command execution.

    Attributes
    ----------
    return_code
        Process exit status.
    stderr
        Standard error collected while the command ran.

    Examples
    --------
    >>> CommandResult(return_code=0, stderr="").success
    True
    """

    return_code: int
    stderr: str

    @property
    def success(self) -> bool:
        """Whether the command exited with status ``0``."""
        return self.return_code == 0


def _validate_command_args(args: list[str]) -> None:
    """Reject arguments carrying control characters."""
    for arg in args:
        if any(char in arg for char in ("\x00", "\n", "\r")):
            msg = "Command argument contains an invalid control character"
            raise CommandError(msg)


def stream_command(
    command: str,
    *args: str,
    cwd: Path | None = None,
    on_output: Callable[[str], object] = print,
) -> CommandResult:
    """Run ``command`` and forward each stdout line to ``on_output``.

    The call blocks until the process exits. A non-zero exit status is
    reported in the result rather than raised.

    Parameters
    ----------
    command
        Executable name or path.
    *args
        Command arguments.
    cwd
        Working directory for the process.
    on_output
        Observer receiving stdout lines without trailing newlines.

    Returns
    -------
    CommandResult
        Exit status and collected standard error.

    Raises
    ------
    CommandError
        If an argument contains a control character, or the executable
        cannot be found or started.

    Examples
    --------
    >>> lines = []
    >>> stream_command("echo", "hello", on_output=lines.append).success
    True
    >>> lines
    ['hello']
    """
    _validate_command_args([command, *args])
    logger.debug("Running %s %s in %s", command, " ".join(args), cwd or ".")
    try:
        bound = local[command][list(args)]
        proc = bound.popen(cwd=cwd)
    except CommandNotFound as exc:
        msg = f"Command {command!r} not found on PATH"
        raise CommandError(msg) from exc
    except OSError as exc:
        msg = f"Command {command!r} could not be started: {exc}"
        raise CommandError(msg) from exc

    errors: list[str] = []
    for out, err in iter_lines(proc, retcode=None, mode=BY_POSITION):
        if out is not None:
            on_output(out.rstrip("\r\n"))
        if err is not None:
            errors.append(err.rstrip("\r\n"))

    return CommandResult(return_code=proc.returncode, stderr="\n".join(errors))
