# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/plan.py
"""
Pure diff functions between the topology and a cluster snapshot.

Nothing in this module talks to a machine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from swarmsync.config.models import IDENTITY_LABEL_KEYS, DesiredTopology, Machine, parse_label
from .models import ClusterNode, Membership


@dataclass(frozen=True)
class LabelDelta:
    to_add: FrozenSet[str] = frozenset()
    to_remove: FrozenSet[str] = frozenset()

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove

    def remove_keys(self) -> List[str]:
        # removal is by key; a key being re-added with a new value is removed first
        return sorted({parse_label(label)[0] for label in self.to_remove})


def label_delta(
    desired: Iterable[str],
    current: Iterable[str],
    protected_keys: FrozenSet[str] = IDENTITY_LABEL_KEYS,
) -> LabelDelta:
    desired = frozenset(desired)
    current = frozenset(current)
    to_remove = frozenset(
        label for label in current - desired if parse_label(label)[0] not in protected_keys
    )
    return LabelDelta(to_add=desired - current, to_remove=to_remove)


def _prefer_ready(nodes: Sequence[ClusterNode]) -> Optional[ClusterNode]:
    if not nodes:
        return None
    ready = [n for n in nodes if n.status == "ready"]
    return (ready or list(nodes))[0]


def match_node(machine: Machine, nodes: Sequence[ClusterNode]) -> Optional[ClusterNode]:
    """
    Find the live node for ``machine``.

    Tried in order: hostname equal to the machine id, a node already labelled
    ``machine.id=<id>``, node address equal to the machine host, hostname
    equal to the machine host.
    """
    for predicate in (
        lambda n: n.hostname == machine.id,
        lambda n: n.machine_id == machine.id,
        lambda n: bool(n.addr) and n.addr == machine.host,
        lambda n: n.hostname == machine.host,
    ):
        found = _prefer_ready([n for n in nodes if predicate(n)])
        if found is not None:
            return found
    return None


def stale_workers(topology: DesiredTopology, nodes: Sequence[ClusterNode]) -> List[ClusterNode]:
    """Live worker nodes that no machine in the topology accounts for."""
    claimed = set()
    for machine in topology.machines:
        node = match_node(machine, nodes)
        if node is not None:
            claimed.add(node.id)
    return [n for n in nodes if not n.is_manager and n.id not in claimed]


@dataclass
class ReconciliationPlan:
    to_join: List[Machine] = field(default_factory=list)
    to_evict: List[ClusterNode] = field(default_factory=list)
    label_delta: Dict[str, LabelDelta] = field(default_factory=dict)
    unreachable: List[Machine] = field(default_factory=list)
    bootstrap: bool = False

    @property
    def label_changes(self) -> int:
        return sum(len(d.to_add) + len(d.to_remove) for d in self.label_delta.values())

    @property
    def empty(self) -> bool:
        return not (self.bootstrap or self.to_join or self.to_evict or self.label_changes)


def compute_plan(
    topology: DesiredTopology,
    nodes: Sequence[ClusterNode],
    membership: Optional[Mapping[str, Membership]] = None,
) -> ReconciliationPlan:
    """
    Diff ``topology`` against a node snapshot.

    ``membership`` holds each worker's own view of its swarm state. Without
    it a worker counts as joined when a live node matches it.
    """
    plan = ReconciliationPlan()
    membership = membership or {}

    for machine in topology.machines:
        node = match_node(machine, nodes)
        state = membership.get(machine.id)

        if not machine.is_manager:
            if state is Membership.UNREACHABLE:
                plan.unreachable.append(machine)
                continue
            joined = state is Membership.MEMBER if state is not None else node is not None
            if not joined:
                plan.to_join.append(machine)
                plan.label_delta[machine.id] = label_delta(machine.desired_labels, ())
                continue

        if node is not None:
            delta = label_delta(machine.desired_labels, node.label_set)
            if not delta.empty:
                plan.label_delta[machine.id] = delta

    plan.to_evict = stale_workers(topology, nodes)
    return plan
