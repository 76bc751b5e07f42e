"""Resolve deployment inputs from the CLI, environment, and saved config."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Where to look for an input and what to use when it is absent.

    Attributes
    ----------
    env_key
        Environment variable consulted after the CLI value.
    config_key
        Key in the saved deployment config consulted after the environment.
    default
        Fallback when no source provides a value.
    required
        Exit with an error when no source provides a value.
    as_path
        Convert environment and config values to ``Path``.
    """

    env_key: str
    config_key: str | None = None
    default: str | Path | None = None
    required: bool = False
    as_path: bool = False


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
    saved: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Resolve an input from parameter, environment, saved config, or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution("AWS_REGION", config_key="region"),
    ...               env={}, saved={"region": "eu-west-1"})
    'eu-west-1'
    """
    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None:
        return Path(env_value) if resolution.as_path else env_value

    if resolution.config_key is not None and saved:
        saved_value = saved.get(resolution.config_key)
        if saved_value is not None:
            return Path(saved_value) if resolution.as_path else saved_value

    if resolution.required:
        msg = f"{resolution.env_key} is required"
        raise SystemExit(msg)

    return resolution.default
