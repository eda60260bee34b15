# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/swarm/bootstrap.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import SecretStr

from swarmsync.config.models import DesiredTopology
from swarmsync.errors import BootstrapError, RemoteCommandError, RemoteUnreachableError
from swarmsync.observers.dispatcher import EventBus
from swarmsync.observers.events import (
    ClusterAlreadyActive,
    ClusterInitialized,
    JoinTokenStored,
    new_ctx,
)
from .docker import ClusterAccess
from .inspector import StateInspector
from .models import Membership
from .tokens import TokenStore

log = logging.getLogger("swarmsync")


class ClusterState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"


@dataclass(frozen=True)
class BootstrapResult:
    initialized: bool
    token: SecretStr


class BootstrapController:
    """
    Brings the manager from UNINITIALIZED to ACTIVE, at most once.

    An already active swarm is never re-initialised; its existing worker
    token is fetched and persisted instead.
    """

    def __init__(
        self,
        access: ClusterAccess,
        inspector: StateInspector,
        tokens: TokenStore,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        self.access = access
        self.inspector = inspector
        self.tokens = tokens
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx("bootstrap", None)

    def state(self, topology: DesiredTopology) -> ClusterState:
        membership = self.inspector.remote_membership(topology.manager)
        if membership is Membership.UNREACHABLE:
            raise BootstrapError(
                f"Manager {topology.manager.id} ({topology.manager.user_host}) is unreachable"
            )
        return ClusterState.ACTIVE if membership is Membership.MEMBER else ClusterState.UNINITIALIZED

    def ensure_cluster(self, topology: DesiredTopology) -> BootstrapResult:
        manager = topology.manager
        docker = self.access.manager(topology)

        if self.state(topology) is ClusterState.ACTIVE:
            log.info("Swarm already initialized on %s, skipping init phase", manager.id)
            self.bus.emit(ClusterAlreadyActive(manager=manager.id, **self.run_ctx))
            initialized = False
        else:
            log.info("Initializing Swarm on manager: %s (%s)", manager.user_host, manager.id)
            try:
                docker.init_swarm(manager.host)
            except (RemoteCommandError, RemoteUnreachableError) as exc:
                raise BootstrapError(f"Failed to initialize Swarm cluster: {exc}") from exc
            self.bus.emit(ClusterInitialized(manager=manager.id, advertise_addr=manager.host, **self.run_ctx))
            log.info("Swarm manager initialized successfully")
            initialized = True

        try:
            token = docker.worker_join_token()
        except (RemoteCommandError, RemoteUnreachableError) as exc:
            raise BootstrapError(f"Failed to retrieve worker join token: {exc}") from exc
        if not token.get_secret_value():
            raise BootstrapError("Manager returned an empty worker join token")

        # rewrite only after a fresh init or when the stored token is missing or stale
        if initialized or not self.tokens.matches(token):
            self.tokens.save(token)
            self.bus.emit(JoinTokenStored(path=str(self.tokens.path), **self.run_ctx))

        return BootstrapResult(initialized=initialized, token=token)
