"""Exception taxonomy for Supascale.

Engine code raises these; the CLI turns any :class:`SupascaleError` into a
one-line message and exit code 1.
"""

from __future__ import annotations


class SupascaleError(Exception):
    """Base class for every error Supascale reports to the user."""


class DependencyError(SupascaleError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, hint: str = "") -> None:
        self.tool = tool
        message = f"{tool} is required but not found on PATH."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)


class InvalidProjectIdError(SupascaleError, ValueError):
    """Project id cannot be used as a directory and compose project name."""


class ProjectExistsError(SupascaleError, ValueError):
    """Project id is already registered or its directory already exists."""


class ProjectNotFoundError(SupascaleError, KeyError):
    """Project id is not in the registry."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Project '{project_id}' not found.")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class TemplateMissingError(SupascaleError):
    """A required template or generated file is absent."""


class TemplateFormatError(SupascaleError):
    """A template exists but cannot be parsed."""


class ProjectFilesMissingError(SupascaleError):
    """A registered project's directory tree is gone."""


class RegistryError(SupascaleError):
    """The registry document cannot be read or parsed."""


class PortRangeError(SupascaleError):
    """A port block would fall outside the valid TCP port range."""


class CommandError(SupascaleError):
    """An external command failed or timed out."""

    def __init__(
        self,
        cmd: list[str],
        returncode: int | None,
        stderr: str = "",
        *,
        timed_out: bool = False,
    ) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        shown = " ".join(cmd)
        if timed_out:
            message = f"Command timed out: {shown}"
        else:
            message = f"Command failed with exit code {returncode}: {shown}"
        if stderr:
            message = f"{message}\n{stderr.strip()[:500]}"
        super().__init__(message)


class ConfigError(SupascaleError):
    """A configuration value is malformed."""
