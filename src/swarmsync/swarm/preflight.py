# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/preflight.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from swarmsync.config.loader import load_topology
from swarmsync.config.models import DesiredTopology
from swarmsync.errors import PreflightError, RemoteUnreachableError
from swarmsync.utils.ssh_runner import RemoteExecutor
from .docker import DockerCLI
from .models import UnreachableMachine

log = logging.getLogger("swarmsync")


class PreflightValidator:
    """
    Checks run before anything is mutated.

    Each check visits every machine and raises once with all failures.
    ``run`` chains the checks and stops at the first one that fails.
    """

    def __init__(self, executor: RemoteExecutor):
        self.executor = executor

    def validate_topology_file(self, path: str | Path) -> DesiredTopology:
        log.info("Validating configuration file %s", path)
        topology = load_topology(path)
        log.info(
            "Configuration OK: %d machine(s), manager=%s",
            len(topology.machines),
            topology.manager.id,
        )
        return topology

    def validate_connectivity(self, topology: DesiredTopology) -> None:
        log.info("Validating SSH connectivity to all machines...")
        failures: List[UnreachableMachine] = []
        for machine in topology.machines:
            try:
                _, rc = self.executor.execute_remote(machine.user_host, "exit")
                reason = None if rc == 0 else f"'exit' returned {rc}"
            except RemoteUnreachableError as exc:
                reason = exc.reason

            if reason is None:
                log.info("  ✓ SSH connectivity to %s", machine.user_host)
            else:
                log.error("  ✗ SSH connectivity to %s failed: %s", machine.user_host, reason)
                failures.append(UnreachableMachine(machine.id, machine.user_host, reason))

        if failures:
            raise PreflightError("ssh", failures)

    def validate_runtime_available(self, topology: DesiredTopology) -> None:
        log.info("Validating Docker availability on all machines...")
        failures: List[UnreachableMachine] = []
        for machine in topology.machines:
            docker = DockerCLI(self.executor.bind(machine.user_host))
            try:
                ok = docker.is_available()
                reason = None if ok else "docker is not running"
            except RemoteUnreachableError as exc:
                reason = exc.reason

            if reason is None:
                log.info("  ✓ Docker is running on %s", machine.user_host)
            else:
                log.error("  ✗ Docker is not available on %s: %s", machine.user_host, reason)
                failures.append(UnreachableMachine(machine.id, machine.user_host, reason))

        if failures:
            raise PreflightError("docker", failures)

    def run(self, path: str | Path) -> DesiredTopology:
        topology = self.validate_topology_file(path)
        self.validate_connectivity(topology)
        self.validate_runtime_available(topology)
        log.info("All pre-flight validation checks passed")
        return topology
