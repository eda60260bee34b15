# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/monitor.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .docker import DockerCLI
from .models import ClusterNode

log = logging.getLogger("swarmsync")

LEADER_ICON = "★"
MANAGER_ICON = "♛"
WORKER_ICON = "·"
BOX_WIDTH = 44


@dataclass
class ClusterHealth:
    nodes: List[ClusterNode] = field(default_factory=list)
    services: List[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.nodes)

    @property
    def managers(self) -> int:
        return sum(1 for n in self.nodes if n.is_manager)

    @property
    def workers(self) -> int:
        return self.total - self.managers

    @property
    def healthy(self) -> int:
        return sum(1 for n in self.nodes if n.healthy)

    @property
    def all_healthy(self) -> bool:
        return self.healthy == self.total


class ClusterMonitor:
    """Read-only health report of the swarm as seen from a manager."""

    def __init__(self, docker: DockerCLI):
        self.docker = docker

    def collect(self) -> ClusterHealth:
        nodes = self.docker.list_nodes()
        services = self.docker.services()
        return ClusterHealth(nodes=nodes, services=services)

    @staticmethod
    def _node_box(node: ClusterNode) -> List[str]:
        if node.leader:
            icon = LEADER_ICON
        elif node.is_manager:
            icon = MANAGER_ICON
        else:
            icon = WORKER_ICON
        mark = "✓" if node.healthy else "✗"
        if node.is_manager:
            role = f"Manager ({node.manager_status or 'Unknown'})"
        else:
            role = "Worker"

        rule = "─" * BOX_WIDTH
        return [
            f"  ┌{rule}┐",
            f"  │ {icon}  {node.hostname}",
            f"  │     Status: {mark} {node.status.capitalize()} | {node.availability.capitalize()}",
            f"  │     Role: {role}",
            f"  └{rule}┘",
            "",
        ]

    def render(self, health: ClusterHealth) -> str:
        lines = ["=== Swarm Cluster Topology ===", ""]
        for node in sorted(health.nodes, key=lambda n: (not n.leader, not n.is_manager, n.hostname)):
            lines.extend(self._node_box(node))

        lines.append("  Cluster Summary:")
        lines.append(
            f"     Total Nodes: {health.total} | Managers: {health.managers} | Workers: {health.workers}"
        )
        if health.all_healthy:
            lines.append("     Health: All nodes healthy")
        else:
            lines.append(f"     Health: {health.total - health.healthy} unhealthy node(s)")

        lines += ["", "=== Swarm Services ==="]
        if not health.services:
            lines.append("  (no services)")
        else:
            lines.append(f"  {'ID':<14}{'NAME':<28}{'MODE':<12}REPLICAS")
            for svc in health.services:
                lines.append(
                    f"  {str(svc.get('ID', ''))[:12]:<14}{str(svc.get('Name', '')):<28}"
                    f"{str(svc.get('Mode', '')):<12}{svc.get('Replicas', '')}"
                )
        return "\n".join(lines)
