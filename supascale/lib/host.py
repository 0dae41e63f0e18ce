"""Host introspection used to print access URLs."""

from __future__ import annotations

import logging

from supascale.errors import SupascaleError
from supascale.lib.shell import run_command

logger = logging.getLogger("supascale.lib.host")

FALLBACK_HOST = "localhost"


def primary_ip() -> str | None:
    """First address reported by ``hostname -I``, or None if unavailable."""
    try:
        output = run_command(["hostname", "-I"], timeout=5)
    except SupascaleError as e:
        logger.debug("hostname -I failed: %s", e)
        return None
    addresses = output.split()
    return addresses[0] if addresses else None
