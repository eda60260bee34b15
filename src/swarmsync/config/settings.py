# src/swarmsync/config/settings.py

from __future__ import annotations

import dataclasses
import getpass
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    token_file: Path
    ssh_key_file: Path
    ssh_timeout: float
    command_timeout: float
    drain_grace_seconds: float
    lock_ttl_seconds: float
    default_ssh_user: str
    log_dir: Path
    swarm_port: int = 2377

    @property
    def lock_file(self) -> Path:
        return self.token_file.parent / ".swarmsync.lock"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "root"


def load_settings(**overrides) -> Settings:
    """
    Resolve runtime settings from the environment.

    Keyword overrides (typically CLI options) win over the environment;
    ``None`` values are ignored.
    """
    settings = Settings(
        token_file=Path(os.getenv("SWARM_TOKEN_FILE", str(Path.cwd() / ".swarm_token"))),
        ssh_key_file=Path(
            os.getenv("SSH_KEY_FILE", str(Path.home() / ".ssh" / "selfhosted_rsa"))
        ).expanduser(),
        ssh_timeout=_env_float("SSH_TIMEOUT", 5.0),
        command_timeout=_env_float("SWARMSYNC_COMMAND_TIMEOUT", 120.0),
        drain_grace_seconds=_env_float("SWARMSYNC_DRAIN_GRACE", 5.0),
        lock_ttl_seconds=_env_float("SWARMSYNC_LOCK_TTL", 900.0),
        default_ssh_user=os.getenv("SWARMSYNC_SSH_USER") or _current_user(),
        log_dir=Path(
            os.getenv("SWARMSYNC_LOG_DIR", str(Path.home() / ".swarmsync" / "logs"))
        ).expanduser(),
    )
    changes = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(settings, **changes)
