# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/manager.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from swarmsync.config.loader import load_topology
from swarmsync.config.models import DesiredTopology
from swarmsync.config.settings import Settings
from swarmsync.errors import PreflightError
from swarmsync.observers.dispatcher import EventBus
from swarmsync.observers.events import (
    NetworkEnsured,
    PlanComputed,
    PreflightFailed,
    PreflightPassed,
    ReconcileSummary,
    new_ctx,
)
from swarmsync.utils.ssh_runner import RemoteExecutor
from .bootstrap import BootstrapController, BootstrapResult
from .docker import ClusterAccess
from .inspector import StateInspector
from .labels import LabelReconciler
from .lock import RunLock
from .membership import MembershipReconciler
from .models import ClusterNode, PhaseReport
from .monitor import ClusterHealth, ClusterMonitor
from .network import NetworkProvisioner
from .plan import ReconciliationPlan, compute_plan
from .preflight import PreflightValidator
from .tokens import TokenStore

log = logging.getLogger("swarmsync")


@dataclass
class ReconcileReport:
    bootstrap: Optional[BootstrapResult] = None
    phases: List[PhaseReport] = field(default_factory=list)
    plan: Optional[ReconciliationPlan] = None
    dry_run: bool = False

    def count(self, status: str) -> int:
        return sum(p.count(status) for p in self.phases)

    @property
    def ok(self) -> bool:
        return all(p.ok for p in self.phases)

    def summary(self) -> str:
        return (
            f"OK={self.count('OK')} FAILED={self.count('FAILED')} "
            f"SKIPPED={self.count('SKIPPED')} UNCHANGED={self.count('UNCHANGED')}"
        )


class SwarmClusterManager:
    """
    Runs the reconciliation flows against one topology file.

    Mutating flows run preflight first, then hold the run lock for the rest
    of the run.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        access: Optional[ClusterAccess] = None,
        observers: Optional[List] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.access = access or ClusterAccess(
            RemoteExecutor(
                key_file=settings.ssh_key_file,
                connect_timeout=settings.ssh_timeout,
                command_timeout=settings.command_timeout,
            )
        )
        self.tokens = TokenStore(settings.token_file)
        self.sleep = sleep

        self.bus = EventBus(observers or [])
        self.run_ctx = run_ctx or new_ctx(env="swarmsync", context=None)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _lock(self) -> RunLock:
        return RunLock(self.settings.lock_file, ttl=self.settings.lock_ttl_seconds)

    def _inspector(self, topology: DesiredTopology) -> StateInspector:
        return StateInspector(self.access, topology)

    def _membership(self, inspector: StateInspector) -> MembershipReconciler:
        return MembershipReconciler(
            self.access,
            inspector,
            leave_user=self.settings.default_ssh_user,
            drain_grace=self.settings.drain_grace_seconds,
            swarm_port=self.settings.swarm_port,
            sleep=self.sleep,
            bus=self.bus,
            run_ctx=self.run_ctx,
        )

    def _labels(self, inspector: StateInspector) -> LabelReconciler:
        return LabelReconciler(self.access, inspector, bus=self.bus, run_ctx=self.run_ctx)

    def _load(self, config: str | Path, *, preflight: bool) -> DesiredTopology:
        if not preflight:
            return load_topology(config)
        return self.preflight(config)

    def _summarise(self, report: ReconcileReport) -> ReconcileReport:
        self.bus.emit(
            ReconcileSummary(
                ok=report.count("OK"),
                failed=report.count("FAILED"),
                skipped=report.count("SKIPPED"),
                unchanged=report.count("UNCHANGED"),
                **self.run_ctx,
            )
        )
        log.info("Swarm cluster sync complete: %s", report.summary())
        return report

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------

    def preflight(self, config: str | Path) -> DesiredTopology:
        validator = PreflightValidator(self.access.executor)
        try:
            topology = validator.run(config)
        except PreflightError as exc:
            self.bus.emit(
                PreflightFailed(
                    check=exc.check,
                    failures=[f.machine_id for f in exc.failures],
                    **self.run_ctx,
                )
            )
            raise
        self.bus.emit(PreflightPassed(machines=len(topology.machines), **self.run_ctx))
        return topology

    def plan(self, topology: DesiredTopology) -> ReconciliationPlan:
        """Compute what a full reconcile would do, without mutating anything."""
        inspector = self._inspector(topology)
        nodes: List[ClusterNode] = []
        active = inspector.is_manager_active()
        if active:
            nodes = inspector.snapshot_cluster_nodes()
        plan = compute_plan(topology, nodes, inspector.worker_membership_report())
        plan.bootstrap = not active
        self.bus.emit(
            PlanComputed(
                to_join=[m.id for m in plan.to_join],
                to_evict=[n.hostname or n.id for n in plan.to_evict],
                label_changes=plan.label_changes,
                **self.run_ctx,
            )
        )
        return plan

    def init_cluster(
        self,
        config: str | Path,
        *,
        dry_run: bool = False,
        evict: bool = True,
        preflight: bool = True,
    ) -> ReconcileReport:
        topology = self._load(config, preflight=preflight)

        if dry_run:
            return ReconcileReport(plan=self.plan(topology), dry_run=True)

        with self._lock() as lock:
            inspector = self._inspector(topology)
            report = ReconcileReport()

            bootstrap = BootstrapController(
                self.access, inspector, self.tokens, bus=self.bus, run_ctx=self.run_ctx
            )
            report.bootstrap = bootstrap.ensure_cluster(topology)
            lock.refresh()

            report.phases.append(
                self._membership(inspector).reconcile(topology, report.bootstrap.token, evict=evict)
            )
            lock.refresh()
            report.phases.append(self._labels(inspector).sync(topology))
            return self._summarise(report)

    def join_workers(
        self,
        config: str | Path,
        *,
        evict: bool = True,
        preflight: bool = True,
    ) -> ReconcileReport:
        # a missing token is reported before any machine is contacted
        token = self.tokens.load()
        topology = self._load(config, preflight=preflight)

        with self._lock():
            inspector = self._inspector(topology)
            report = ReconcileReport()
            report.phases.append(self._membership(inspector).reconcile(topology, token, evict=evict))
            return self._summarise(report)

    def label_nodes(self, config: str | Path, *, preflight: bool = True) -> ReconcileReport:
        topology = self._load(config, preflight=preflight)

        with self._lock():
            report = ReconcileReport()
            report.phases.append(self._labels(self._inspector(topology)).sync(topology))
            return self._summarise(report)

    def ensure_network(self, name: str, config: Optional[str | Path] = None, *, attachable: bool = True) -> bool:
        docker = self.access.docker()
        if config is not None:
            docker = self.access.manager(load_topology(config))
        created = NetworkProvisioner(docker).ensure_overlay_network(name, attachable=attachable)
        self.bus.emit(NetworkEnsured(name=name, created=created, **self.run_ctx))
        return created

    def cluster_health(self, config: Optional[str | Path] = None) -> tuple[ClusterHealth, str]:
        docker = self.access.docker()
        if config is not None:
            docker = self.access.manager(load_topology(config))
        monitor = ClusterMonitor(docker)
        health = monitor.collect()
        return health, monitor.render(health)

    def close(self) -> None:
        self.access.executor.close()
