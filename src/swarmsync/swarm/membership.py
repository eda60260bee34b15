# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/membership.py

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Collection, Dict, List, Optional

from pydantic import SecretStr

from swarmsync.config.models import DesiredTopology
from swarmsync.errors import RemoteCommandError, RemoteUnreachableError
from swarmsync.observers.dispatcher import EventBus
from swarmsync.observers.events import (
    NodeDrained,
    NodeEvictFailed,
    NodeLeft,
    NodeRemoved,
    WorkerJoinFailed,
    WorkerJoined,
    WorkerSkipped,
    new_ctx,
)
from .docker import ClusterAccess
from .inspector import StateInspector
from .models import ClusterNode, MachineOutcome, Membership, PhaseReport
from .plan import stale_workers

log = logging.getLogger("swarmsync")


class MembershipReconciler:
    """
    Joins missing workers and evicts workers the topology no longer names.

    Machines are handled one at a time in topology order. A failure on one
    machine is recorded in the report and the loop moves on.
    """

    def __init__(
        self,
        access: ClusterAccess,
        inspector: StateInspector,
        *,
        leave_user: str,
        drain_grace: float = 5.0,
        swarm_port: int = 2377,
        sleep: Callable[[float], None] = time.sleep,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        self.access = access
        self.inspector = inspector
        self.leave_user = leave_user
        self.drain_grace = drain_grace
        self.swarm_port = swarm_port
        self.sleep = sleep
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx("membership", None)

    # -----------------------------------------------------------------
    # join
    # -----------------------------------------------------------------
    def join_workers(
        self,
        topology: DesiredTopology,
        token: SecretStr,
        report: Optional[PhaseReport] = None,
    ) -> PhaseReport:
        report = report or PhaseReport("join")
        manager_addr = topology.manager.host

        if not topology.workers:
            log.info("No worker machines in topology, skipping join phase")
            return report

        for machine in topology.workers:
            # decided per machine right before acting, not from a batch snapshot
            membership = self.inspector.remote_membership(machine)

            if membership is Membership.MEMBER:
                log.info("Worker %s is already in swarm, skipping", machine.id)
                report.add(MachineOutcome(machine.id, "join", "UNCHANGED"))
                continue

            if membership is Membership.UNREACHABLE:
                log.warning(
                    "Worker %s (%s) is unreachable, not joining it this run",
                    machine.id,
                    machine.user_host,
                )
                self.bus.emit(WorkerSkipped(name=machine.id, reason="unreachable", **self.run_ctx))
                report.add(MachineOutcome(machine.id, "join", "SKIPPED", error="unreachable"))
                continue

            log.info("Joining worker: %s (%s)", machine.id, machine.user_host)
            try:
                self.access.docker_on(machine).join_swarm(token, manager_addr, self.swarm_port)
            except (RemoteCommandError, RemoteUnreachableError) as exc:
                log.error("Failed to join worker %s: %s", machine.id, exc)
                self.bus.emit(WorkerJoinFailed(name=machine.id, error=str(exc), **self.run_ctx))
                report.add(MachineOutcome(machine.id, "join", "FAILED", error=str(exc)))
                continue

            log.info("Worker %s joined successfully", machine.id)
            self.bus.emit(WorkerJoined(name=machine.id, host=machine.host, **self.run_ctx))
            report.add(MachineOutcome(machine.id, "join", "OK"))

        return report

    # -----------------------------------------------------------------
    # evict
    # -----------------------------------------------------------------
    def evict_stale(
        self,
        topology: DesiredTopology,
        nodes: Optional[List[ClusterNode]] = None,
        report: Optional[PhaseReport] = None,
    ) -> PhaseReport:
        report = report or PhaseReport("evict")
        if nodes is None:
            nodes = self.inspector.snapshot_cluster_nodes(topology)

        stale = stale_workers(topology, nodes)
        if not stale:
            log.debug("No stale worker nodes to evict")
            return report

        # addresses that belong to machines we keep; never send them a leave
        stale_ids = {n.id for n in stale}
        keep = set()
        for machine in topology.machines:
            keep.update((machine.host, machine.id))
        for n in nodes:
            if n.id not in stale_ids:
                keep.update(x for x in (n.addr, n.hostname) if x)

        manager = self.access.manager(topology)
        for node in stale:
            self._evict(manager, node, report, keep)
        return report

    def _evict(self, manager, node: ClusterNode, report: PhaseReport, keep: Collection[str] = ()) -> None:
        name = node.hostname or node.id
        log.info("Removing node %s from swarm...", name)

        stage = "drain"
        try:
            manager.drain(node.ref)
            self.bus.emit(NodeDrained(node=name, **self.run_ctx))

            if self.drain_grace > 0:
                log.debug("Waiting %.0fs for services to drain off %s", self.drain_grace, name)
                self.sleep(self.drain_grace)

            stage = "remove"
            manager.remove_node(node.ref, force=True)
            self.bus.emit(NodeRemoved(node=name, **self.run_ctx))
        except (RemoteCommandError, RemoteUnreachableError) as exc:
            # never ask a node to leave before it has been removed
            log.error("Failed to %s node %s: %s", stage, name, exc)
            self.bus.emit(NodeEvictFailed(node=name, stage=stage, error=str(exc), **self.run_ctx))
            report.add(MachineOutcome(name, "evict", "FAILED", error=f"{stage}: {exc}"))
            return

        outcome = MachineOutcome(name, "evict", "OK", details=["drained", "removed"])
        address = node.addr or node.hostname
        if not address:
            log.warning("Node %s has no known address, not asking it to leave", name)
        elif node.status != "ready":
            log.info("Node %s was %s, not asking it to leave", name, node.status)
        elif address in keep or node.hostname in keep:
            # a leftover entry of a machine that rejoined; its host is still wanted
            log.info("Node %s shares %s with a kept machine, not asking it to leave", name, address)
        else:
            try:
                self.access.docker_at(f"{self.leave_user}@{address}").leave_swarm(force=True)
                self.bus.emit(NodeLeft(node=name, ok=True, **self.run_ctx))
                outcome.details.append("left")
            except (RemoteCommandError, RemoteUnreachableError) as exc:
                log.warning("Node %s was removed but could not be told to leave: %s", name, exc)
                self.bus.emit(NodeLeft(node=name, ok=False, error=str(exc), **self.run_ctx))

        log.info("Node %s evicted", name)
        report.add(outcome)

    def reconcile(
        self,
        topology: DesiredTopology,
        token: SecretStr,
        *,
        evict: bool = True,
    ) -> PhaseReport:
        report = PhaseReport("membership")
        self.join_workers(topology, token, report)
        if evict:
            self.evict_stale(topology, report=report)
        return report
