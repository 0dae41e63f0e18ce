"""Port allocation -- derive a project's port block from the registry watermark."""

from __future__ import annotations

import logging
import socket

from supascale.engine.models import DEFAULT_BASE_PORT, PortBlock
from supascale.errors import PortRangeError

logger = logging.getLogger("supascale.engine.ports")

PORT_INCREMENT = 1000
MAX_PORT = 65535

# Offsets from the api port. The stride above must stay larger than the
# spread of these offsets for blocks to remain disjoint.
PORT_OFFSETS: dict[str, int] = {
    "api": 0,
    "db": 1,
    "shadow": -1,
    "studio": 2,
    "inbucket": 3,
    "smtp": 4,
    "pop3": 5,
    "analytics": 6,
    "pooler": 8,
    "kong_https": 443,
}


def allocate(last_port_assigned: int = DEFAULT_BASE_PORT) -> tuple[PortBlock, int]:
    """Compute the port block starting at *last_port_assigned*.

    Returns:
        ``(block, next_watermark)`` where ``next_watermark`` is the value the
        registry must store so the next project gets a fresh block.

    Raises:
        PortRangeError: If any port of the block would be outside 1..65535.
    """
    api = last_port_assigned
    ports = {role: api + offset for role, offset in PORT_OFFSETS.items()}

    low, high = min(ports.values()), max(ports.values())
    if low < 1 or high > MAX_PORT:
        raise PortRangeError(
            f"Port block starting at {api} spans {low}-{high}, "
            f"outside the valid range 1-{MAX_PORT}."
        )

    return PortBlock(**ports), last_port_assigned + PORT_INCREMENT


def busy_ports(block: PortBlock, host: str = "127.0.0.1") -> list[int]:
    """Return the ports of *block* that something on *host* already listens on."""
    busy: list[int] = []
    for port in block.values():
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(0.2)
            if sock.connect_ex((host, port)) == 0:
                busy.append(port)
    if busy:
        logger.debug("Ports already in use on %s: %s", host, busy)
    return busy
