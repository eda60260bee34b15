# src/swarmsync/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # CLI command that produced the event (init-cluster, label-nodes, ...)
    context: Optional[str]  # topology file

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Preflight & plan
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PreflightPassed(BaseEvent):
    machines: int

@dataclass(frozen=True)
class PreflightFailed(BaseEvent):
    check: str
    failures: List[str]

@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    to_join: List[str]
    to_evict: List[str]
    label_changes: int


# ---------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ClusterInitialized(BaseEvent):
    manager: str
    advertise_addr: str

@dataclass(frozen=True)
class ClusterAlreadyActive(BaseEvent):
    manager: str

@dataclass(frozen=True)
class JoinTokenStored(BaseEvent):
    path: str


# ---------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class WorkerJoined(BaseEvent):
    name: str
    host: str

@dataclass(frozen=True)
class WorkerSkipped(BaseEvent):
    name: str
    reason: str

@dataclass(frozen=True)
class WorkerJoinFailed(BaseEvent):
    name: str
    error: str

@dataclass(frozen=True)
class NodeDrained(BaseEvent):
    node: str

@dataclass(frozen=True)
class NodeRemoved(BaseEvent):
    node: str

@dataclass(frozen=True)
class NodeLeft(BaseEvent):
    node: str
    ok: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class NodeEvictFailed(BaseEvent):
    node: str
    stage: str        # "drain" | "remove"
    error: str


# ---------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LabelAdded(BaseEvent):
    name: str
    label: str

@dataclass(frozen=True)
class LabelRemoved(BaseEvent):
    name: str
    label: str

@dataclass(frozen=True)
class LabelSyncFailed(BaseEvent):
    name: str
    error: str


# ---------------------------------------------------------------------
# Network & summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NetworkEnsured(BaseEvent):
    name: str
    created: bool

@dataclass(frozen=True)
class ReconcileSummary(BaseEvent):
    ok: int
    failed: int
    skipped: int
    unchanged: int
