# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/utils/helpers.py

from __future__ import annotations

import socket
from typing import Optional, Set


def outbound_ip(route_to: str = "8.8.8.8") -> Optional[str]:
    """
    IP address this host would use for outbound traffic.

    Connecting a UDP socket sends no packets; it only selects a route.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect((route_to, 80))
        return sock.getsockname()[0]
    except OSError:
        return None
    finally:
        sock.close()


def local_addresses() -> Set[str]:
    names = {"localhost", "127.0.0.1", "::1"}
    try:
        names.add(socket.gethostname())
        names.add(socket.getfqdn())
        names.update(socket.gethostbyname_ex(socket.gethostname())[2])
    except OSError:
        pass
    ip = outbound_ip()
    if ip:
        names.add(ip)
    return {n.lower() for n in names if n}


def is_local_host(host: str) -> bool:
    """True when ``host`` names the machine swarmsync is running on."""
    return host.strip().lower() in local_addresses()
