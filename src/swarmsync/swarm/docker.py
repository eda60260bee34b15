# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/docker.py

from __future__ import annotations

import json
import logging
import shlex
from typing import Callable, Iterable, List, Optional, Protocol

from pydantic import SecretStr

from swarmsync.config.models import DesiredTopology, Machine
from swarmsync.errors import RemoteCommandError
from swarmsync.execution.runner import CommandRunner
from swarmsync.utils.helpers import is_local_host
from swarmsync.utils.ssh_runner import RemoteExecutor
from .models import ClusterNode

log = logging.getLogger("swarmsync")


class Channel(Protocol):
    target: str

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
        display: Optional[str] = None,
    ) -> tuple[int, str, str]: ...


class DockerCLI:
    """
    docker CLI executed through a command channel (local or SSH).

    Query helpers return parsed output; mutating helpers raise
    ``RemoteCommandError`` when docker exits non-zero.
    """

    def __init__(self, channel: Channel):
        self.channel = channel

    @property
    def target(self) -> str:
        return self.channel.target

    def _run(self, args: str, *, display: Optional[str] = None) -> tuple[int, str, str]:
        cmd = f"docker {args}"
        return self.channel.run(cmd, display=f"docker {display}" if display else None)

    def _check(self, args: str, *, display: Optional[str] = None) -> str:
        rc, out, err = self._run(args, display=display)
        if rc != 0:
            raise RemoteCommandError(
                self.target,
                f"docker {display or args}",
                rc,
                (err or out).strip(),
            )
        return out

    # -----------------------------------------------------------------
    # local node state
    # -----------------------------------------------------------------
    def local_node_state(self) -> str:
        """``active``, ``inactive``, ``pending``, ... ``inactive`` if docker fails."""
        rc, out, _ = self._run("info --format '{{.Swarm.LocalNodeState}}'")
        if rc != 0:
            return "inactive"
        return out.strip().lower() or "inactive"

    def is_control_available(self) -> bool:
        rc, out, _ = self._run("info --format '{{.Swarm.ControlAvailable}}'")
        return rc == 0 and out.strip().lower() == "true"

    def node_id(self) -> str:
        rc, out, _ = self._run("info --format '{{.Swarm.NodeID}}'")
        return out.strip() if rc == 0 else ""

    def is_available(self) -> bool:
        rc, _, _ = self._run("info")
        return rc == 0

    # -----------------------------------------------------------------
    # nodes
    # -----------------------------------------------------------------
    def node_ids(self) -> List[str]:
        out = self._check("node ls -q")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def inspect_nodes(self, refs: Iterable[str]) -> List[ClusterNode]:
        refs = list(refs)
        if not refs:
            return []
        out = self._check("node inspect " + " ".join(shlex.quote(r) for r in refs))
        try:
            data = json.loads(out or "[]")
        except json.JSONDecodeError as exc:
            raise RemoteCommandError(self.target, "docker node inspect", 0, f"unparseable output: {exc}") from exc
        return [ClusterNode.from_inspect(item) for item in data]

    def list_nodes(self) -> List[ClusterNode]:
        return self.inspect_nodes(self.node_ids())

    def inspect_node(self, ref: str) -> Optional[ClusterNode]:
        rc, out, _ = self._run(f"node inspect {shlex.quote(ref)}")
        if rc != 0:
            return None
        try:
            data = json.loads(out or "[]")
        except json.JSONDecodeError as exc:
            raise RemoteCommandError(self.target, f"docker node inspect {ref}", 0, f"unparseable output: {exc}") from exc
        return ClusterNode.from_inspect(data[0]) if data else None

    def add_label(self, ref: str, key: str, value: str) -> None:
        self._check(f"node update --label-add {shlex.quote(f'{key}={value}')} {shlex.quote(ref)}")

    def remove_label(self, ref: str, key: str) -> None:
        self._check(f"node update --label-rm {shlex.quote(key)} {shlex.quote(ref)}")

    def drain(self, ref: str) -> None:
        self._check(f"node update --availability drain {shlex.quote(ref)}")

    def remove_node(self, ref: str, *, force: bool = True) -> None:
        flag = " --force" if force else ""
        self._check(f"node rm{flag} {shlex.quote(ref)}")

    # -----------------------------------------------------------------
    # swarm
    # -----------------------------------------------------------------
    def init_swarm(self, advertise_addr: str) -> None:
        self._check(f"swarm init --advertise-addr {shlex.quote(advertise_addr)}")

    def worker_join_token(self) -> SecretStr:
        out = self._check("swarm join-token -q worker")
        return SecretStr(out.strip())

    def join_swarm(self, token: SecretStr, manager_addr: str, port: int = 2377) -> None:
        remote = shlex.quote(f"{manager_addr}:{port}")
        self._check(
            f"swarm join --token {shlex.quote(token.get_secret_value())} {remote}",
            display=f"swarm join --token **** {remote}",
        )

    def leave_swarm(self, *, force: bool = True) -> None:
        flag = " --force" if force else ""
        self._check(f"swarm leave{flag}")

    # -----------------------------------------------------------------
    # networks & services
    # -----------------------------------------------------------------
    def network_names(self) -> List[str]:
        out = self._check("network ls --format '{{.Name}}'")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def create_overlay_network(self, name: str, *, attachable: bool = True) -> None:
        flag = " --attachable" if attachable else ""
        self._check(f"network create --driver=overlay{flag} {shlex.quote(name)}")

    def services(self) -> List[dict]:
        out = self._check("service ls --format '{{json .}}'")
        services = []
        for line in out.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                services.append(json.loads(line))
            except json.JSONDecodeError:
                log.debug("skipping unparseable service line: %s", line)
        return services


class ClusterAccess:
    """
    Hands out docker command channels for the operator's host and the
    machines in the topology.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        *,
        local: Optional[Channel] = None,
        is_local: Callable[[str], bool] = is_local_host,
    ):
        self.executor = executor
        self.local = local or CommandRunner()
        self.is_local = is_local

    def docker(self) -> DockerCLI:
        return DockerCLI(self.local)

    def docker_at(self, user_host: str) -> DockerCLI:
        return DockerCLI(self.executor.bind(user_host))

    def docker_on(self, machine: Machine) -> DockerCLI:
        if self.is_local(machine.host):
            return self.docker()
        return self.docker_at(machine.user_host)

    def manager(self, topology: DesiredTopology) -> DockerCLI:
        """Channel to the manager: local when this host is the manager, else SSH."""
        return self.docker_on(topology.manager)
