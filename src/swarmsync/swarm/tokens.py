# src/swarmsync/swarm/tokens.py

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import SecretStr

from swarmsync.errors import TokenMissingError

log = logging.getLogger("swarmsync")


class TokenStore:
    """
    Worker join token persisted in a single file (mode 0600).
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file() and bool(self.path.read_text().strip())

    def load(self) -> SecretStr:
        if not self.exists():
            raise TokenMissingError(
                f"No swarm token found at {self.path}. Run 'init-cluster' first."
            )
        return SecretStr(self.path.read_text().strip())

    def matches(self, token: SecretStr) -> bool:
        return self.exists() and self.load().get_secret_value() == token.get_secret_value()

    def save(self, token: SecretStr) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(token.get_secret_value() + "\n")
        os.chmod(self.path, 0o600)
        log.info("Swarm join token saved to %s", self.path)
