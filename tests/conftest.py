# tests/conftest.py
from __future__ import annotations

import json
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import yaml

from swarmsync.config.models import DesiredTopology
from swarmsync.config.settings import Settings
from swarmsync.errors import RemoteUnreachableError
from swarmsync.swarm.docker import ClusterAccess
from swarmsync.utils.ssh_runner import RemoteExecutor

OPERATOR_HOST = "10.0.0.100"
TOKEN = "SWMTKN-1-fake-worker-token"

MUTATING = (
    "docker swarm init",
    "docker swarm join ",
    "docker swarm leave",
    "docker node update",
    "docker node rm",
    "docker network create",
)


# ---- In-memory swarm driven by docker CLI strings ----

@dataclass
class FakeHost:
    address: str
    hostname: str
    reachable: bool = True
    docker_ok: bool = True
    state: str = "inactive"
    node_id: str = ""


class FakeSwarm:
    """
    Interprets the docker commands swarmsync issues and keeps just enough
    state (hosts, nodes, labels, networks) to answer the follow-up queries.
    """

    def __init__(self, operator: str = OPERATOR_HOST):
        self.operator = operator
        self.hosts: Dict[str, FakeHost] = {}
        self.nodes: Dict[str, dict] = {}
        self.networks: List[str] = ["bridge", "host", "ingress"]
        self.services: List[dict] = []
        self.calls: List[tuple] = []
        self.displays: List[str] = []
        self.remote_calls: List[tuple] = []
        self.failures: Dict[tuple, tuple] = {}
        self._seq = 0

    # -- setup helpers --
    def add_host(self, address: str, hostname: Optional[str] = None, **kw) -> FakeHost:
        host = FakeHost(address=address, hostname=hostname or address, **kw)
        self.hosts[address] = host
        return host

    def add_node(self, address: str, role: str = "worker", labels: Optional[dict] = None, **over) -> str:
        host = self.hosts[address]
        node_id = self._new_node(host, role)
        self.nodes[node_id]["labels"].update(labels or {})
        self.nodes[node_id].update(over)
        return node_id

    def add_ghost_node(self, hostname: str, addr: str = "", role: str = "worker", **over) -> str:
        """A node listed by the manager whose machine is not reachable by address."""
        self._seq += 1
        node_id = f"node{self._seq:03d}"
        self.nodes[node_id] = self._node_record(node_id, hostname, role, addr)
        self.nodes[node_id].update(over)
        return node_id

    def fail(self, address: str, prefix: str, rc: int = 1, err: str = "simulated failure") -> None:
        self.failures[(address, prefix)] = (rc, err)

    # -- observations --
    @property
    def mutations(self) -> List[tuple]:
        return [(h, c) for h, c in self.calls if c.startswith(MUTATING)]

    def commands_on(self, address: str) -> List[str]:
        return [c for h, c in self.calls if h == address]

    def node_by_hostname(self, hostname: str) -> Optional[dict]:
        return next((n for n in self.nodes.values() if n["hostname"] == hostname), None)

    # -- internals --
    @staticmethod
    def _node_record(node_id, hostname, role, addr):
        return {
            "id": node_id,
            "hostname": hostname,
            "role": role,
            "leader": role == "manager",
            "availability": "active",
            "status": "ready",
            "addr": addr,
            "labels": {},
        }

    def _new_node(self, host: FakeHost, role: str) -> str:
        self._seq += 1
        node_id = f"node{self._seq:03d}"
        self.nodes[node_id] = self._node_record(node_id, host.hostname, role, host.address)
        host.state = "active"
        host.node_id = node_id
        return node_id

    def _is_manager(self, host: Optional[FakeHost]) -> bool:
        if host is None or host.state != "active":
            return False
        node = self.nodes.get(host.node_id)
        return node is not None and node["role"] == "manager"

    def _find(self, ref: str) -> Optional[dict]:
        if ref in self.nodes:
            return self.nodes[ref]
        return self.node_by_hostname(ref)

    @staticmethod
    def _inspect(node: dict) -> dict:
        data = {
            "ID": node["id"],
            "Description": {"Hostname": node["hostname"]},
            "Spec": {
                "Role": node["role"],
                "Availability": node["availability"],
                "Labels": dict(node["labels"]),
            },
            "Status": {"State": node["status"], "Addr": node["addr"]},
        }
        if node["role"] == "manager":
            data["ManagerStatus"] = {"Leader": node["leader"], "Reachability": "reachable"}
        return data

    def handle(self, address: str, cmd: str) -> tuple:
        self.calls.append((address, cmd))
        for (addr, prefix), (rc, err) in self.failures.items():
            if addr == address and cmd.startswith(prefix):
                return rc, "", err

        host = self.hosts.get(address)
        if host is None:
            return 255, "", f"unknown host {address}"
        if cmd == "exit":
            return 0, "", ""

        argv = shlex.split(cmd)
        if argv[0] != "docker":
            return 127, "", f"{argv[0]}: command not found"
        if not host.docker_ok:
            return 1, "", "Cannot connect to the Docker daemon at unix:///var/run/docker.sock"
        return self._docker(host, argv[1:])

    def _docker(self, host: FakeHost, args: List[str]) -> tuple:
        sub = args[0]
        if sub == "info":
            if len(args) == 1:
                return 0, "Server Version: 24.0.7\n", ""
            fmt = args[2]
            if "LocalNodeState" in fmt:
                return 0, host.state + "\n", ""
            if "ControlAvailable" in fmt:
                return 0, ("true" if self._is_manager(host) else "false") + "\n", ""
            if "NodeID" in fmt:
                return 0, host.node_id + "\n", ""
        if sub == "swarm":
            return self._swarm(host, args[1:])
        if sub == "node":
            if not self._is_manager(host):
                return 1, "", "Error response from daemon: This node is not a swarm manager."
            return self._node(args[1:])
        if sub == "network":
            return self._network(args[1:])
        if sub == "service":
            return 0, "".join(json.dumps(s) + "\n" for s in self.services), ""
        return 1, "", f"unknown docker command {args}"

    def _swarm(self, host: FakeHost, args: List[str]) -> tuple:
        action = args[0]
        if action == "init":
            if host.state == "active":
                return 1, "", "This node is already part of a swarm."
            self._new_node(host, "manager")
            return 0, "Swarm initialized\n", ""
        if action == "join-token":
            if not self._is_manager(host):
                return 1, "", "This node is not a swarm manager."
            return 0, TOKEN + "\n", ""
        if action == "join":
            token = args[args.index("--token") + 1]
            remote = args[-1]
            if host.state == "active":
                return 1, "", "This node is already part of a swarm."
            if token != TOKEN:
                return 1, "", "invalid join token"
            if not self._is_manager(self.hosts.get(remote.split(":")[0])):
                return 1, "", f"could not connect to {remote}"
            self._new_node(host, "worker")
            return 0, "This node joined a swarm as a worker.\n", ""
        if action == "leave":
            node = self.nodes.get(host.node_id)
            if node is not None:
                node["status"] = "down"
            host.state = "inactive"
            host.node_id = ""
            return 0, "Node left the swarm.\n", ""
        return 1, "", f"unknown swarm command {args}"

    def _node(self, args: List[str]) -> tuple:
        action = args[0]
        if action == "ls":
            return 0, "".join(i + "\n" for i in self.nodes), ""
        if action == "inspect":
            found = []
            for ref in args[1:]:
                node = self._find(ref)
                if node is None:
                    return 1, "", f"Error: No such node: {ref}"
                found.append(self._inspect(node))
            return 0, json.dumps(found), ""
        if action == "update":
            node = self._find(args[-1])
            if node is None:
                return 1, "", f"Error: No such node: {args[-1]}"
            opts = args[1:-1]
            for flag, value in zip(opts[::2], opts[1::2]):
                if flag == "--label-add":
                    key, _, val = value.partition("=")
                    node["labels"][key] = val
                elif flag == "--label-rm":
                    node["labels"].pop(value, None)
                elif flag == "--availability":
                    node["availability"] = value
            return 0, node["id"] + "\n", ""
        if action == "rm":
            node = self._find(args[-1])
            if node is None:
                return 1, "", f"Error: No such node: {args[-1]}"
            del self.nodes[node["id"]]
            return 0, node["id"] + "\n", ""
        return 1, "", f"unknown node command {args}"

    def _network(self, args: List[str]) -> tuple:
        if args[0] == "ls":
            return 0, "".join(n + "\n" for n in self.networks), ""
        if args[0] == "create":
            name = args[-1]
            if name in self.networks:
                return 1, "", f"network with name {name} already exists"
            self.networks.append(name)
            return 0, "f00dbabe\n", ""
        return 1, "", f"unknown network command {args}"


class FakeExecutor(RemoteExecutor):
    """RemoteExecutor whose transport is the in-memory swarm."""

    def __init__(self, swarm: FakeSwarm):
        super().__init__(connect_timeout=1, command_timeout=5)
        self.swarm = swarm

    def run(self, user_host, command, *, display=None):
        _, _, address = user_host.rpartition("@")
        host = self.swarm.hosts.get(address)
        if host is None or not host.reachable:
            raise RemoteUnreachableError(user_host, "timed out")
        self.swarm.remote_calls.append((user_host, command))
        if display:
            self.swarm.displays.append(display)
        return self.swarm.handle(address, command)

    def copy_file(self, user_host, local_path, remote_path):
        self.swarm.calls.append((user_host, f"copy {local_path} {remote_path}"))


class FakeLocalChannel:
    target = "localhost"

    def __init__(self, swarm: FakeSwarm):
        self.swarm = swarm

    def run(self, cmd, *, sudo=False, timeout=None, display=None):
        if display:
            self.swarm.displays.append(display)
        return self.swarm.handle(self.swarm.operator, cmd)


# ---- Fixtures ----

SCENARIO = {
    "manager": {"host": "10.0.0.1", "user": "admin", "role": "manager"},
    "worker-1": {"host": "10.0.0.2", "user": "admin", "labels": ["zone=a"]},
}


@pytest.fixture
def swarm():
    s = FakeSwarm()
    s.add_host(OPERATOR_HOST, "operator")
    return s


@pytest.fixture
def executor(swarm):
    return FakeExecutor(swarm)


@pytest.fixture
def access(swarm, executor):
    return ClusterAccess(
        executor,
        local=FakeLocalChannel(swarm),
        is_local=lambda host: host == swarm.operator,
    )


@pytest.fixture
def topology_from():
    def _build(machines: dict) -> DesiredTopology:
        return DesiredTopology.from_config(machines)
    return _build


@pytest.fixture
def write_config(tmp_path: Path):
    def _write(machines: dict, name: str = "homelab.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump({"machines": machines}, sort_keys=False))
        return path
    return _write


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        token_file=tmp_path / ".swarm_token",
        ssh_key_file=tmp_path / "id_test",
        ssh_timeout=1.0,
        command_timeout=5.0,
        drain_grace_seconds=5.0,
        lock_ttl_seconds=900.0,
        default_ssh_user="admin",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def scenario_hosts(swarm):
    """Reachable machines for the manager + worker-1 topology, no swarm yet."""
    swarm.add_host("10.0.0.1", "manager")
    swarm.add_host("10.0.0.2", "worker-1")
    return swarm
