# src/swarmsync/swarm/labels.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from swarmsync.config.models import DesiredTopology, Machine, parse_label
from swarmsync.errors import RemoteCommandError, RemoteUnreachableError
from swarmsync.observers.dispatcher import EventBus
from swarmsync.observers.events import LabelAdded, LabelRemoved, LabelSyncFailed, new_ctx
from .docker import ClusterAccess, DockerCLI
from .inspector import StateInspector
from .models import ClusterNode, MachineOutcome, PhaseReport
from .plan import label_delta, match_node

log = logging.getLogger("swarmsync")


class LabelReconciler:
    """
    Converges node labels to identity labels plus the topology's custom labels.
    """

    def __init__(
        self,
        access: ClusterAccess,
        inspector: StateInspector,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        self.access = access
        self.inspector = inspector
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx("labels", None)

    def sync(
        self,
        topology: DesiredTopology,
        nodes: Optional[List[ClusterNode]] = None,
    ) -> PhaseReport:
        report = PhaseReport("labels")
        if nodes is None:
            nodes = self.inspector.snapshot_cluster_nodes(topology)
        docker = self.access.manager(topology)

        for machine in [topology.manager, *topology.workers]:
            node = match_node(machine, nodes)
            if node is None:
                log.error("No Docker node found for machine '%s'", machine.id)
                report.add(MachineOutcome(machine.id, "label", "SKIPPED", error="node not found"))
                continue

            try:
                changes = self._sync_node(docker, machine, node)
            except (RemoteCommandError, RemoteUnreachableError) as exc:
                log.error("Label sync failed for %s: %s", machine.id, exc)
                self.bus.emit(LabelSyncFailed(name=machine.id, error=str(exc), **self.run_ctx))
                report.add(MachineOutcome(machine.id, "label", "FAILED", error=str(exc)))
                continue

            status = "OK" if changes else "UNCHANGED"
            report.add(MachineOutcome(machine.id, "label", status, details=changes))
        return report

    def _fresh_labels(self, docker: DockerCLI, node: ClusterNode) -> Dict[str, str]:
        current = docker.inspect_node(node.ref)
        if current is None:
            raise RemoteCommandError(docker.target, f"docker node inspect {node.ref}", 1, "node disappeared")
        return current.labels

    def _sync_node(self, docker: DockerCLI, machine: Machine, node: ClusterNode) -> List[str]:
        delta = label_delta(machine.desired_labels, node.label_set)
        if delta.empty:
            log.debug("Labels on %s already match", machine.id)
            return []

        desired = machine.desired_labels
        changes: List[str] = []

        for key in delta.remove_keys():
            live = self._fresh_labels(docker, node)
            if key not in live or f"{key}={live[key]}" in desired:
                continue
            docker.remove_label(node.ref, key)
            log.info("Removed obsolete label '%s' from %s", key, machine.id)
            self.bus.emit(LabelRemoved(name=machine.id, label=key, **self.run_ctx))
            changes.append(f"-{key}")

        for label in sorted(delta.to_add):
            key, value = parse_label(label)
            live = self._fresh_labels(docker, node)
            if live.get(key) == value:
                continue
            docker.add_label(node.ref, key, value)
            log.info("Applied label '%s' to %s", label, machine.id)
            self.bus.emit(LabelAdded(name=machine.id, label=label, **self.run_ctx))
            changes.append(f"+{label}")

        return changes
