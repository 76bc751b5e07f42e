"""Saved deployment configuration for repeat deployments.

The CLI loads this file before a run so an existing deployment is updated
with the same parameters, and rewrites it after a successful run. The
pipeline itself never touches it.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path

from cloud_deploy._deploy_errors import ConfigurationError
from cloud_deploy._deploy_models import DeploymentConfig

DEFAULT_CONFIG_FILE = Path(".cloud-deploy.json")
_CONFIG_FIELDS = tuple(item.name for item in fields(DeploymentConfig))


def load_config(path: Path) -> dict[str, str]:
    """Return the saved deployment values, or an empty mapping.

    Examples
    --------
    >>> load_config(Path("missing.json"))
    {}
    """
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in deployment config {path}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(payload, dict):
        msg = f"Deployment config {path} must contain a JSON object"
        raise ConfigurationError(msg)

    values: dict[str, str] = {}
    for key in _CONFIG_FIELDS:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            msg = f"Config field {key!r} must be a string"
            raise ConfigurationError(msg)
        values[key] = value
    return values


def save_config(path: Path, config: DeploymentConfig) -> None:
    """Persist ``config`` atomically, keeping unrelated keys in the file."""
    existing: dict[str, object] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            loaded = {}
        if isinstance(loaded, dict):
            existing = loaded
    existing.update(asdict(config))

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    payload = json.dumps(existing, indent=2, sort_keys=True)
    tmp_path.write_text(payload + "\n", encoding="utf-8")
    tmp_path.replace(path)
