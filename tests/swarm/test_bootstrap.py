# tests/swarm/test_bootstrap.py
from __future__ import annotations

import stat

import pytest
from pydantic import SecretStr

from swarmsync.errors import BootstrapError, TokenMissingError
from swarmsync.observers.dispatcher import EventBus
from swarmsync.swarm.bootstrap import BootstrapController, ClusterState
from swarmsync.swarm.inspector import StateInspector
from swarmsync.swarm.tokens import TokenStore

TOKEN = "SWMTKN-1-fake-worker-token"

MACHINES = {
    "manager": {"host": "10.0.0.1", "user": "admin", "role": "manager"},
    "worker-1": {"host": "10.0.0.2", "user": "admin", "labels": ["zone=a"]},
}


class Collect:
    def __init__(self): self.events = []
    def notify(self, event): self.events.append(event)


def _controller(access, topo, tmp_path, observer=None):
    bus = EventBus([observer] if observer else [])
    tokens = TokenStore(tmp_path / ".swarm_token")
    return BootstrapController(access, StateInspector(access, topo), tokens, bus=bus), tokens


def test_fresh_bootstrap_inits_remote_manager_and_saves_token(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    topo = topology_from(MACHINES)
    seen = Collect()
    controller, tokens = _controller(access, topo, tmp_path, seen)

    assert controller.state(topo) is ClusterState.UNINITIALIZED
    result = controller.ensure_cluster(topo)

    assert result.initialized is True
    assert result.token.get_secret_value() == TOKEN
    assert "docker swarm init --advertise-addr 10.0.0.1" in swarm.commands_on("10.0.0.1")
    assert tokens.load().get_secret_value() == TOKEN
    assert stat.S_IMODE(tokens.path.stat().st_mode) == 0o600
    assert [type(e).__name__ for e in seen.events] == ["ClusterInitialized", "JoinTokenStored"]


def test_bootstrap_runs_locally_when_operator_is_manager(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    swarm.operator = "10.0.0.1"
    controller, _ = _controller(access, topology_from(MACHINES), tmp_path)

    controller.ensure_cluster(topology_from(MACHINES))

    assert swarm.remote_calls == []
    assert "docker swarm init --advertise-addr 10.0.0.1" in swarm.commands_on("10.0.0.1")


def test_active_cluster_is_not_reinitialized(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    swarm.add_node("10.0.0.1", role="manager")
    topo = topology_from(MACHINES)
    controller, tokens = _controller(access, topo, tmp_path)

    result = controller.ensure_cluster(topo)

    assert result.initialized is False
    assert not [c for c in swarm.commands_on("10.0.0.1") if c.startswith("docker swarm init")]
    assert tokens.load().get_secret_value() == TOKEN


def test_existing_matching_token_file_is_left_alone(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    swarm.add_node("10.0.0.1", role="manager")
    topo = topology_from(MACHINES)
    seen = Collect()
    controller, tokens = _controller(access, topo, tmp_path, seen)
    tokens.save(SecretStr(TOKEN))
    before = tokens.path.stat().st_mtime_ns

    controller.ensure_cluster(topo)

    assert tokens.path.stat().st_mtime_ns == before
    assert [type(e).__name__ for e in seen.events] == ["ClusterAlreadyActive"]


def test_failed_init_is_bootstrap_error(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    swarm.fail("10.0.0.1", "docker swarm init", err="could not choose an IP address")
    topo = topology_from(MACHINES)
    controller, tokens = _controller(access, topo, tmp_path)

    with pytest.raises(BootstrapError, match="could not choose an IP address"):
        controller.ensure_cluster(topo)
    assert not tokens.exists()


def test_empty_token_is_bootstrap_error(scenario_hosts, access, topology_from, tmp_path):
    swarm = scenario_hosts
    swarm.add_node("10.0.0.1", role="manager")
    swarm.fail("10.0.0.1", "docker swarm join-token", rc=0, err="")
    controller, _ = _controller(access, topology_from(MACHINES), tmp_path)

    with pytest.raises(BootstrapError, match="empty"):
        controller.ensure_cluster(topology_from(MACHINES))


def test_unreachable_manager_is_bootstrap_error(swarm, access, topology_from, tmp_path):
    swarm.add_host("10.0.0.1", "manager", reachable=False)
    controller, _ = _controller(access, topology_from(MACHINES), tmp_path)

    with pytest.raises(BootstrapError, match="unreachable"):
        controller.ensure_cluster(topology_from(MACHINES))


def test_token_store_missing_file(tmp_path):
    with pytest.raises(TokenMissingError, match="Run 'init-cluster' first"):
        TokenStore(tmp_path / ".swarm_token").load()
