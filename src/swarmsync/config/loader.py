# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/config/loader.py

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from swarmsync.errors import ConfigError
from .models import DesiredTopology

log = logging.getLogger("swarmsync")

DEFAULT_CONFIG_FILE = "homelab.yaml"


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text(encoding="utf-8")
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        lines.append(f"  {loc or '<root>'}: {err.get('msg')}")
    return "\n".join(lines)


def load_topology(path: str | Path) -> DesiredTopology:
    """
    Load and validate a machine topology file.

    The file must contain a top-level ``machines`` mapping::

        machines:
          manager:
            host: 10.0.0.1
            user: admin
            role: manager
          worker-1:
            host: 10.0.0.2
            user: admin
            labels:
              - zone=a

    ``role`` defaults to ``worker``. Any structural problem (missing file,
    invalid YAML, no manager, more than one manager, malformed labels) is
    raised as ``ConfigError`` before anything touches the network.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file '{path}' not found")

    try:
        data = _load_yaml(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file '{path}' is not valid YAML: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Configuration file '{path}' could not be read: {exc}") from exc

    if not isinstance(data, dict) or "machines" not in data:
        raise ConfigError(
            f"Configuration file '{path}' appears to be missing required 'machines:' section"
        )

    try:
        topology = DesiredTopology.from_config(data["machines"])
    except ValidationError as exc:
        raise ConfigError(
            f"Configuration file '{path}' is invalid:\n{_format_validation_error(exc)}"
        ) from exc

    log.debug(
        "Loaded topology from %s: manager=%s workers=%s",
        path,
        topology.manager.id,
        [m.id for m in topology.workers],
    )
    return topology
