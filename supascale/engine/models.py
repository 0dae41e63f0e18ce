"""Pydantic models for the project registry document."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_BASE_PORT = 54321


class PortBlock(BaseModel):
    """The fixed set of host ports allocated to one project."""

    api: int
    db: int
    shadow: int
    studio: int
    inbucket: int
    smtp: int
    pop3: int
    pooler: int
    analytics: int
    # absent in records written before the HTTPS gateway port was allocated
    kong_https: int | None = None

    def values(self) -> list[int]:
        return [port for port in self.model_dump().values() if port is not None]


class ProjectRecord(BaseModel):
    """One registered project.

    ``project_id`` mirrors the registry key and is never written inside the
    record itself.
    """

    model_config = ConfigDict(extra="allow")

    project_id: str = Field(default="", exclude=True)
    directory: str
    ports: PortBlock


class Registry(BaseModel):
    """The whole registry document: all projects plus the port watermark."""

    model_config = ConfigDict(extra="allow")

    projects: dict[str, ProjectRecord] = Field(default_factory=dict)
    last_port_assigned: int = DEFAULT_BASE_PORT

    @model_validator(mode="after")
    def _bind_project_ids(self) -> Registry:
        for key, record in self.projects.items():
            record.project_id = key
        return self

    def to_json(self) -> str:
        return self.model_dump_json(indent=2) + "\n"
