# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/errors.py
from __future__ import annotations

from typing import List


class SwarmSyncError(RuntimeError):
    """Base class for swarmsync failures."""


class ConfigError(SwarmSyncError):
    """Raised when the topology file is missing, malformed or inconsistent."""


class PreflightError(SwarmSyncError):
    """
    Raised when a preflight check fails.

    ``failures`` holds every machine that failed the check, not just the first.
    """

    def __init__(self, check: str, failures: List):
        self.check = check
        self.failures = list(failures)
        names = ", ".join(f.machine_id for f in self.failures)
        super().__init__(f"Preflight check '{check}' failed for: {names}")


class RemoteUnreachableError(SwarmSyncError):
    """Raised when an SSH connection to a machine cannot be established."""

    def __init__(self, user_host: str, reason: str):
        self.user_host = user_host
        self.reason = reason
        super().__init__(f"{user_host} is unreachable: {reason}")


class RemoteCommandError(SwarmSyncError):
    """Raised when a platform command exits non-zero."""

    def __init__(self, target: str, command: str, exit_code: int, output: str = ""):
        self.target = target
        self.command = command
        self.exit_code = exit_code
        self.output = output
        detail = f": {output}" if output else ""
        super().__init__(f"[{target}] '{command}' failed (rc={exit_code}){detail}")


class BootstrapError(SwarmSyncError):
    """Raised when the swarm cannot be initialised or its join token retrieved."""


class TokenMissingError(SwarmSyncError):
    """Raised when no persisted join token exists yet."""


class NetworkProvisionError(SwarmSyncError):
    """Raised when an overlay network cannot be created."""


class LockHeldError(SwarmSyncError):
    """Raised when another reconciliation run holds the run lock."""
