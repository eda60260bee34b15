# src/swarmsync/swarm/lock.py

from __future__ import annotations

import json
import logging
import os
import socket
import time
from pathlib import Path
from typing import Callable, Optional

from swarmsync.errors import LockHeldError

log = logging.getLogger("swarmsync")


class RunLock:
    """
    Lease file serialising mutating runs against one cluster.

    The file holds ``{"pid", "host", "ts"}``. A lease older than ``ttl``
    seconds is treated as abandoned and taken over.
    """

    def __init__(self, path: str | Path, *, ttl: float = 900.0, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self.ttl = ttl
        self.clock = clock
        self._held = False

    def _read(self) -> Optional[dict]:
        try:
            return json.loads(self.path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            # unreadable or half-written lease; age it by mtime instead
            try:
                return {"ts": self.path.stat().st_mtime}
            except FileNotFoundError:
                return None

    def _try_create(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            json.dump({"pid": os.getpid(), "host": socket.gethostname(), "ts": self.clock()}, f)
        return True

    def acquire(self) -> None:
        if self._try_create():
            self._held = True
            return

        lease = self._read() or {}
        age = self.clock() - float(lease.get("ts", 0))
        if age < self.ttl:
            holder = f"pid {lease.get('pid', '?')} on {lease.get('host', '?')}"
            raise LockHeldError(
                f"Another swarmsync run ({holder}) holds {self.path}; "
                f"retry later or remove the file if that run is gone"
            )

        log.warning("Taking over stale run lock %s (%.0fs old)", self.path, age)
        self.path.unlink(missing_ok=True)
        if not self._try_create():
            raise LockHeldError(f"Lost the race for stale run lock {self.path}")
        self._held = True

    def refresh(self) -> None:
        """Push the lease timestamp forward so a long run is not taken over."""
        if not self._held:
            return
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps({"pid": os.getpid(), "host": socket.gethostname(), "ts": self.clock()}))
        os.replace(tmp, self.path)

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
