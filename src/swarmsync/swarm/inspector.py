# src/swarmsync/swarm/inspector.py

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from swarmsync.config.models import DesiredTopology, Machine
from swarmsync.errors import RemoteUnreachableError
from .docker import ClusterAccess, DockerCLI
from .models import ClusterNode, Membership

log = logging.getLogger("swarmsync")


class StateInspector:
    """
    Read-only view of the live swarm.

    Nothing here mutates the cluster. Failing to reach a remote machine is
    reported as ``Membership.UNREACHABLE`` instead of being raised.
    """

    def __init__(self, access: ClusterAccess, topology: Optional[DesiredTopology] = None):
        self.access = access
        self.topology = topology

    def _manager_docker(self, topology: Optional[DesiredTopology] = None) -> DockerCLI:
        topology = topology or self.topology
        if topology is None:
            return self.access.docker()
        return self.access.manager(topology)

    # this host
    def is_cluster_active(self) -> bool:
        return self.access.docker().local_node_state() == "active"

    def is_local_node_manager(self) -> bool:
        return self.access.docker().is_control_available()

    def local_status(self) -> Dict[str, object]:
        docker = self.access.docker()
        state = docker.local_node_state()
        active = state == "active"
        return {
            "state": state,
            "manager": active and docker.is_control_available(),
            "node_id": docker.node_id() if active else "",
        }

    # remote machines
    def remote_membership(self, machine: Machine) -> Membership:
        try:
            state = self.access.docker_on(machine).local_node_state()
        except RemoteUnreachableError as exc:
            log.debug("%s unreachable during membership check: %s", machine.id, exc.reason)
            return Membership.UNREACHABLE
        return Membership.MEMBER if state == "active" else Membership.ABSENT

    def is_remote_node_in_cluster(self, machine: Machine) -> bool:
        return self.remote_membership(machine) is Membership.MEMBER

    def is_manager_active(self, topology: Optional[DesiredTopology] = None) -> bool:
        topology = topology or self.topology
        if topology is None:
            return self.is_cluster_active()
        return self.remote_membership(topology.manager) is Membership.MEMBER

    def snapshot_cluster_nodes(self, topology: Optional[DesiredTopology] = None) -> List[ClusterNode]:
        """Fresh ``docker node inspect`` of every node, taken on the manager."""
        nodes = self._manager_docker(topology).list_nodes()
        log.debug("snapshot: %s", [(n.hostname, n.role, n.status) for n in nodes])
        return nodes

    def worker_membership_report(self, topology: Optional[DesiredTopology] = None) -> Dict[str, Membership]:
        topology = topology or self.topology
        if topology is None:
            return {}
        report = {}
        for machine in topology.workers:
            report[machine.id] = self.remote_membership(machine)
        return report
