"""Shared fixtures: isolated configuration and a fake Supabase checkout."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from supascale.config import SupascaleConfig, reset_config
from supascale.engine.materialize import ProjectPaths

ENV_EXAMPLE = """\
############
# Secrets
# YOU MUST CHANGE THESE BEFORE GOING INTO PRODUCTION
############

POSTGRES_PASSWORD=your-super-secret-and-long-postgres-password
JWT_SECRET=your-super-secret-jwt-token-with-at-least-32-characters-long
ANON_KEY=eyJhbGciOiJIUzI1NiJ9.anon
SERVICE_ROLE_KEY=eyJhbGciOiJIUzI1NiJ9.service
DASHBOARD_USERNAME=supabase
DASHBOARD_PASSWORD=this_password_is_insecure_and_should_be_updated
VAULT_ENC_KEY=your-encryption-key-32-chars-min

############
# API Proxy - Configuration for the Kong Reverse proxy.
############

KONG_HTTP_PORT=8000
KONG_HTTPS_PORT=8443
"""

COMPOSE_TEMPLATE = """\
name: supabase

services:
  studio:
    container_name: supabase-studio
    image: supabase/studio:latest
    restart: unless-stopped
    ports:
      - 3000:3000
  kong:
    container_name: supabase-kong
    image: kong:2.8.1
    ports:
      - ${KONG_HTTP_PORT}:8000/tcp
      - ${KONG_HTTPS_PORT}:8443/tcp
  db:
    container_name: supabase-db
    image: supabase/postgres:15
    ports:
      - "127.0.0.1:5432:5432"
  analytics:
    container_name: supabase-analytics
    image: supabase/logflare:1.4.0
    ports:
      - target: 4000
        published: 4000
        protocol: tcp
  inbucket:
    container_name: supabase-mail
    image: inbucket/inbucket:3.0.3
    ports:
      - "9000:9000"
  meta:
    container_name: supabase-meta
    image: supabase/postgres-meta:v0.80.0
    environment:
      PG_META_PORT: 8080
"""

CLI_CONFIG = """\
# A string used to distinguish different Supabase projects on the same host.
project_id = "docker"

[api]
enabled = true
# Port to use for the API URL.
port = 54321
schemas = ["public", "graphql_public"]

[db]
# Port to use for the local database URL.
port = 54322
# Port used by db diff command to initialize the shadow database.
shadow_port = 54320
major_version = 15

[db.pooler]
enabled = false
port = 54329
pool_mode = "transaction"

[studio]
enabled = true
port = 54323
api_url = "http://127.0.0.1"

[inbucket]
enabled = true
port = 54324
# smtp_port = 54325
# pop3_port = 54326

[analytics]
enabled = true
port = 54327
backend = "postgres"
"""


def make_checkout(
    repo_dir: Path,
    *,
    env_example: bool = True,
    compose: bool = True,
    cli_config: bool = True,
) -> None:
    """Lay out the parts of a Supabase checkout that Supascale touches."""
    docker_dir = repo_dir / "docker"
    docker_dir.mkdir(parents=True)
    if env_example:
        (docker_dir / ".env.example").write_text(ENV_EXAMPLE, encoding="utf-8")
    if compose:
        (docker_dir / "docker-compose.yml").write_text(COMPOSE_TEMPLATE, encoding="utf-8")
    if cli_config:
        (repo_dir / "supabase").mkdir()
        (repo_dir / "supabase" / "config.toml").write_text(CLI_CONFIG, encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's SUPASCALE_* settings and config file out of tests."""
    for key in list(os.environ):
        if key.startswith("SUPASCALE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("SUPASCALE_CONFIG_FILE", str(tmp_path / "absent.env"))
    monkeypatch.setenv("SUPASCALE_REGISTRY_FILE", str(tmp_path / "registry.json"))
    monkeypatch.setenv("SUPASCALE_PROJECTS_ROOT", str(tmp_path / "projects"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path: Path) -> SupascaleConfig:
    return SupascaleConfig(
        registry_file=tmp_path / "registry.json",
        projects_root=tmp_path / "projects",
    )


@pytest.fixture
def fake_tools():
    """Pretend git/docker exist, clone by writing a fake checkout, never probe ports."""

    def _clone(repo_url, dest, **kwargs):
        make_checkout(Path(dest))

    with patch("supascale.engine.lifecycle.require_tools") as require, patch(
        "supascale.engine.lifecycle.git.clone", side_effect=_clone
    ) as clone, patch(
        "supascale.engine.lifecycle.busy_ports", return_value=[]
    ), patch(
        "supascale.engine.lifecycle.compose.up"
    ) as up, patch(
        "supascale.engine.lifecycle.compose.down"
    ) as down, patch(
        "supascale.engine.lifecycle.host.primary_ip", return_value="10.0.0.5"
    ):
        yield {"require": require, "clone": clone, "up": up, "down": down}


@pytest.fixture
def make_project(tmp_path: Path):
    """Factory: build a fake checkout under ``<tmp>/<name>`` and return its paths."""

    def _make(name: str = "demo", **parts: bool) -> ProjectPaths:
        paths = ProjectPaths(tmp_path / name)
        make_checkout(paths.repo_dir, **parts)
        return paths

    return _make


@pytest.fixture
def checkout():
    """The fake-checkout builder, for tests that lay out a project by hand."""
    return make_checkout
