"""Integration tests for the full project lifecycle through the CLI.

Runs add/list/start/stop/remove end to end against a real registry file and
real template files. Only git, docker and host probing are faked.

Run with: pytest tests/integration/test_full_flow.py -v
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path

import yaml
from click.testing import CliRunner
from dotenv import dotenv_values

from supascale.cli import cli
from supascale.config import reset_config
from supascale.errors import CommandError


def _invoke(*args: str, input: str | None = None):
    # a fresh config per invocation, as with separate processes
    reset_config()
    return CliRunner().invoke(cli, list(args), input=input)


class TestTwoProjects:
    """Add two projects, inspect their files, remove one, add another."""

    def test_full_flow(self, tmp_path: Path, fake_tools):
        registry_file = tmp_path / "registry.json"

        result = _invoke("list")
        assert result.exit_code == 0
        assert "No projects configured yet." in result.output

        result = _invoke("add", input="demo\n")
        assert result.exit_code == 0, result.output
        result = _invoke("add", "--project-id", "demo2")
        assert result.exit_code == 0, result.output

        stored = json.loads(registry_file.read_text())
        assert list(stored["projects"]) == ["demo", "demo2"]
        assert stored["last_port_assigned"] == 56321
        assert stored["projects"]["demo"]["ports"]["api"] == 54321
        assert stored["projects"]["demo2"]["ports"]["api"] == 55321

        # every port is unique across both projects
        all_ports = [
            port
            for record in stored["projects"].values()
            for port in record["ports"].values()
        ]
        assert len(all_ports) == len(set(all_ports)) == 20

        demo2 = Path(stored["projects"]["demo2"]["directory"])
        docker_dir = demo2 / "supabase" / "docker"
        env = dotenv_values(docker_dir / ".env")
        assert env["KONG_HTTP_PORT"] == "55321"
        assert env["KONG_HTTPS_PORT"] == "55764"
        compose_doc = yaml.safe_load((docker_dir / "docker-compose.yml").read_text())
        assert compose_doc["services"]["db"]["container_name"] == "demo2-supabase-db"
        assert compose_doc["services"]["db"]["ports"] == ["127.0.0.1:55322:5432"]
        cli_doc = tomllib.loads((demo2 / "supabase" / "supabase" / "config.toml").read_text())
        assert cli_doc["project_id"] == "demo2"
        assert cli_doc["db"]["shadow_port"] == 55320

        result = _invoke("start", "demo2")
        assert result.exit_code == 0
        assert "http://10.0.0.5:55323" in result.output

        result = _invoke("stop", "demo2", "--keep-volumes")
        assert result.exit_code == 0

        result = _invoke("remove", "demo")
        assert result.exit_code == 0
        stored = json.loads(registry_file.read_text())
        assert list(stored["projects"]) == ["demo2"]
        assert stored["last_port_assigned"] == 56321

        result = _invoke("list")
        assert "demo2" in result.output

        result = _invoke("add", "--project-id", "demo3")
        assert result.exit_code == 0
        stored = json.loads(registry_file.read_text())
        assert stored["projects"]["demo3"]["ports"]["api"] == 56321

    def test_failed_add_leaves_no_trace(self, tmp_path: Path, fake_tools):
        fake_tools["clone"].side_effect = CommandError(
            ["git", "clone"], 128, "fatal: unable to access"
        )
        result = _invoke("add", "--project-id", "demo")
        assert result.exit_code == 1
        assert "fatal: unable to access" in result.output
        assert not (tmp_path / "projects" / "demo").exists()

        stored = json.loads((tmp_path / "registry.json").read_text())
        assert stored == {"projects": {}, "last_port_assigned": 54321}
