# src/swarmsync/execution/runner.py
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger("swarmsync")


@dataclass
class CommandRunner:
    """
    Command channel for the operator's own host.

    Mirrors ``SSHRunner.run`` so docker commands can be issued the same way
    whether the swarm manager is local or remote.
    """

    target: str = "localhost"
    shell: str = "bash"

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
        display: Optional[str] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            cmd = f"sudo -H -E {self.shell} -c '{cmd}'"

        log.debug("[%s] $ %s", self.target, display or cmd)
        start = time.time()

        try:
            result = subprocess.run(
                [self.shell, "-c", cmd],
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            return 127, "", str(exc)
        except subprocess.TimeoutExpired:
            return 124, "", f"timed out after {timeout}s"

        duration = time.time() - start
        if result.returncode != 0:
            log.debug(
                "[%s][exit %s] (%.2fs) %s",
                self.target,
                result.returncode,
                duration,
                (result.stderr or "").strip(),
            )
        return result.returncode, result.stdout or "", result.stderr or ""
