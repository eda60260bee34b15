# src/swarmsync/swarm/network.py

from __future__ import annotations

import logging

from swarmsync.errors import NetworkProvisionError, RemoteCommandError
from .docker import DockerCLI

log = logging.getLogger("swarmsync")


class NetworkProvisioner:
    def __init__(self, docker: DockerCLI):
        self.docker = docker

    def ensure_overlay_network(self, name: str, *, attachable: bool = True) -> bool:
        """
        Create overlay network ``name`` unless one with that exact name exists.

        Returns True when the network was created, False when it was already there.
        """
        try:
            existing = self.docker.network_names()
        except RemoteCommandError as exc:
            raise NetworkProvisionError(f"Could not list networks: {exc}") from exc

        if name in existing:
            log.info("Overlay network '%s' already exists", name)
            return False

        log.info("Creating overlay network '%s'", name)
        try:
            self.docker.create_overlay_network(name, attachable=attachable)
        except RemoteCommandError as exc:
            raise NetworkProvisionError(f"Failed to create overlay network '{name}': {exc}") from exc
        log.info("Overlay network '%s' created", name)
        return True
