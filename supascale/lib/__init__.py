"""Wrappers for the external tools Supascale shells out to."""

from supascale.lib.shell import require_tools, run_command

__all__ = ["require_tools", "run_command"]
