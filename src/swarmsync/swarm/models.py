# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from swarmsync.config.models import MACHINE_ID_LABEL, format_label


class Membership(str, Enum):
    """What a remote machine reports about its own swarm state."""

    MEMBER = "member"
    ABSENT = "absent"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class ClusterNode:
    """
    One node as reported by ``docker node inspect`` on the manager.
    """

    id: str
    hostname: str
    role: str                   # "manager" | "worker"
    leader: bool = False
    manager_status: str = ""    # "Leader" | "Reachable" | "Unreachable" | ""
    status: str = "unknown"     # "ready" | "down" | ...
    availability: str = "active"
    addr: str = ""
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_inspect(cls, data: Dict[str, Any]) -> "ClusterNode":
        spec = data.get("Spec") or {}
        status = data.get("Status") or {}
        description = data.get("Description") or {}
        manager = data.get("ManagerStatus") or {}

        leader = bool(manager.get("Leader", False))
        if leader:
            manager_status = "Leader"
        else:
            reach = str(manager.get("Reachability") or "")
            manager_status = reach.capitalize() if reach else ""

        return cls(
            id=str(data.get("ID", "")),
            hostname=str(description.get("Hostname", "")),
            role=str(spec.get("Role", "worker")).lower(),
            leader=leader,
            manager_status=manager_status,
            status=str(status.get("State", "unknown")).lower(),
            availability=str(spec.get("Availability", "active")).lower(),
            addr=str(status.get("Addr", "")),
            labels={str(k): "" if v is None else str(v) for k, v in (spec.get("Labels") or {}).items()},
        )

    @property
    def is_manager(self) -> bool:
        return self.role == "manager"

    @property
    def healthy(self) -> bool:
        return self.status == "ready" and self.availability == "active"

    @property
    def label_set(self) -> FrozenSet[str]:
        return frozenset(format_label(k, v) for k, v in self.labels.items())

    @property
    def machine_id(self) -> Optional[str]:
        return self.labels.get(MACHINE_ID_LABEL)

    @property
    def ref(self) -> str:
        """Name used in docker node commands; the id is unambiguous."""
        return self.id or self.hostname


@dataclass(frozen=True)
class UnreachableMachine:
    machine_id: str
    user_host: str
    reason: str


@dataclass
class MachineOutcome:
    name: str
    action: str                 # "join" | "evict" | "label" | "bootstrap" | "network"
    status: str                 # "OK" | "FAILED" | "SKIPPED" | "UNCHANGED"
    error: Optional[str] = None
    details: List[str] = field(default_factory=list)


@dataclass
class PhaseReport:
    phase: str
    outcomes: List[MachineOutcome] = field(default_factory=list)

    def add(self, outcome: MachineOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def failed(self) -> List[MachineOutcome]:
        return [o for o in self.outcomes if o.status == "FAILED"]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (
            f"OK={self.count('OK')} FAILED={self.count('FAILED')} "
            f"SKIPPED={self.count('SKIPPED')} UNCHANGED={self.count('UNCHANGED')}"
        )
