"""Template materialization -- render a project's env, compose and CLI config files.

The platform checkout ships templates that assume a single instance per
host. This module turns them into per-project files:

* ``docker/.env`` from ``docker/.env.example`` with fresh secrets and the
  Kong ports of the project's block.
* ``docker/docker-compose.yml`` with project-prefixed container names and
  host ports taken from the block.
* ``supabase/config.toml`` (optional) with the block's ports per section.

Every file is edited through a parse of its format rather than blind text
substitution, and every expected key or port mapping that is missing from a
template is reported back as a warning.
"""

from __future__ import annotations

import logging
import re
import secrets
import shutil
import string
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, set_key

from supascale.engine.models import PortBlock
from supascale.errors import TemplateFormatError, TemplateMissingError

logger = logging.getLogger("supascale.engine.materialize")

SECRET_LENGTH = 40
_ALPHABET = string.ascii_letters + string.digits

# Keys that need a JWT signed with JWT_SECRET. They are blanked and left for
# the operator to fill in.
MANUAL_JWT_KEYS = ("ANON_KEY", "SERVICE_ROLE_KEY")

# Container-side port -> port block role whose value becomes the host port.
COMPOSE_PORT_ROLES: dict[int, str] = {
    8000: "api",
    5432: "db",
    3000: "studio",
    9000: "inbucket",
    4000: "analytics",
    8443: "kong_https",
}

# config.toml section -> {key: port block role}
CLI_CONFIG_PORTS: dict[str, dict[str, str]] = {
    "api": {"port": "api"},
    "db": {"port": "db", "shadow_port": "shadow"},
    "studio": {"port": "studio"},
    "inbucket": {"port": "inbucket", "smtp_port": "smtp", "pop3_port": "pop3"},
    "db.pooler": {"port": "pooler"},
    "analytics": {"port": "analytics"},
}

_TOML_SECTION = re.compile(r"^\s*\[(?P<name>[^\[\]]+)\]\s*(#.*)?$")
_TOML_ARRAY_SECTION = re.compile(r"^\s*\[\[")
_TOML_ASSIGN = re.compile(
    r"^(?P<indent>\s*)(?P<key>[A-Za-z0-9_-]+)(?P<eq>\s*=\s*)(?P<value>[^#\s]+)(?P<rest>.*)$"
)


@dataclass(frozen=True)
class ProjectPaths:
    """Well-known file locations inside one project directory."""

    directory: Path

    @property
    def repo_dir(self) -> Path:
        return self.directory / "supabase"

    @property
    def docker_dir(self) -> Path:
        return self.repo_dir / "docker"

    @property
    def env_example(self) -> Path:
        return self.docker_dir / ".env.example"

    @property
    def env_file(self) -> Path:
        return self.docker_dir / ".env"

    @property
    def compose_file(self) -> Path:
        return self.docker_dir / "docker-compose.yml"

    @property
    def cli_config(self) -> Path:
        return self.repo_dir / "supabase" / "config.toml"


@dataclass(frozen=True)
class GeneratedSecrets:
    """Secrets written into a project's ``.env``."""

    postgres_password: str
    jwt_secret: str
    dashboard_password: str
    vault_enc_key: str

    def as_env(self) -> dict[str, str]:
        return {
            "POSTGRES_PASSWORD": self.postgres_password,
            "JWT_SECRET": self.jwt_secret,
            "DASHBOARD_PASSWORD": self.dashboard_password,
            "VAULT_ENC_KEY": self.vault_enc_key,
        }


def generate_password(length: int = SECRET_LENGTH) -> str:
    """Random alphanumeric string from the OS CSPRNG."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_secrets() -> GeneratedSecrets:
    return GeneratedSecrets(
        postgres_password=generate_password(),
        jwt_secret=generate_password(),
        dashboard_password=generate_password(),
        vault_enc_key=generate_password(),
    )


def _backup(path: Path) -> None:
    """Keep the pristine template next to the file as ``<name>.bak``."""
    backup = path.with_name(path.name + ".bak")
    if not backup.exists():
        shutil.copyfile(path, backup)


# ── .env ──────────────────────────────────────────────────────────────


def write_env_values(env_file: Path, values: dict[str, str]) -> list[str]:
    """Set *values* in *env_file*, preserving comments and other keys.

    Returns:
        Warnings for keys that were not present in the file and got appended.
    """
    present = set(dotenv_values(env_file))
    warnings: list[str] = []
    for key, value in values.items():
        if key not in present:
            warnings.append(f"{key} not found in {env_file.name}; appended it.")
        set_key(env_file, key, value, quote_mode="never")
    return warnings


def materialize_env(
    paths: ProjectPaths, generated: GeneratedSecrets | None = None
) -> tuple[GeneratedSecrets, list[str]]:
    """Create ``.env`` from ``.env.example`` with fresh secrets and blank JWT keys.

    Raises:
        TemplateMissingError: If ``.env.example`` does not exist.
    """
    if not paths.env_example.is_file():
        raise TemplateMissingError(f".env.example not found in {paths.docker_dir}")

    shutil.copyfile(paths.env_example, paths.env_file)
    generated = generated or generate_secrets()
    values = generated.as_env()
    values.update({key: "" for key in MANUAL_JWT_KEYS})
    warnings = write_env_values(paths.env_file, values)
    logger.info("Wrote %s with generated secrets", paths.env_file)
    return generated, warnings


def ensure_env(paths: ProjectPaths) -> bool:
    """Recreate ``.env`` from the example if it is missing.

    Returns:
        True if the file had to be recreated (its secrets are the template's).

    Raises:
        TemplateMissingError: If both ``.env`` and ``.env.example`` are absent.
    """
    if paths.env_file.is_file():
        return False
    if not paths.env_example.is_file():
        raise TemplateMissingError(
            f".env and .env.example are both missing in {paths.docker_dir}"
        )
    shutil.copyfile(paths.env_example, paths.env_file)
    logger.warning("Recreated %s from .env.example", paths.env_file)
    return True


def apply_env_ports(paths: ProjectPaths, block: PortBlock) -> list[str]:
    """Point the Kong gateway ports in ``.env`` at the project's block."""
    if not paths.env_file.is_file():
        raise TemplateMissingError(f".env not found in {paths.docker_dir}")
    values = {"KONG_HTTP_PORT": str(block.api)}
    warnings: list[str] = []
    if block.kong_https is None:
        warnings.append("No kong_https port recorded; KONG_HTTPS_PORT left unchanged.")
    else:
        values["KONG_HTTPS_PORT"] = str(block.kong_https)
    return warnings + write_env_values(paths.env_file, values)


# ── docker-compose.yml ────────────────────────────────────────────────


def _split_host(head: str) -> tuple[str, str]:
    """Split ``[ip:]host`` on the last colon that is not inside ``${...}``."""
    depth = 0
    cut = -1
    for i, ch in enumerate(head):
        if head.startswith("${", i):
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
        elif ch == ":" and not depth:
            cut = i
    if cut < 0:
        return "", head
    return head[:cut], head[cut + 1:]


def _remap_short_port(entry: str, ports: dict[int, int]) -> tuple[str, int | None]:
    """Rewrite ``[ip:]host:container[/proto]`` if *container* is a known port."""
    body, slash, proto = entry.partition("/")
    head, sep, container = body.rpartition(":")
    if not sep or not container.isdigit() or int(container) not in ports:
        return entry, None

    ip, _host = _split_host(head)
    ip_prefix = f"{ip}:" if ip else ""

    target = int(container)
    rewritten = f"{ip_prefix}{ports[target]}:{container}"
    if slash:
        rewritten += f"/{proto}"
    return rewritten, target


def _remap_port(entry: Any, ports: dict[int, int]) -> tuple[Any, int | None]:
    if isinstance(entry, str):
        return _remap_short_port(entry, ports)
    if isinstance(entry, dict):
        try:
            target = int(entry.get("target"))
        except (TypeError, ValueError):
            return entry, None
        if target in ports:
            return {**entry, "published": str(ports[target])}, target
    return entry, None


def rewrite_compose(compose_file: Path, project_id: str, block: PortBlock) -> list[str]:
    """Prefix container names with the project id and remap host ports.

    Returns:
        Warnings for well-known container ports that no mapping published.

    Raises:
        TemplateMissingError: If the compose file does not exist.
        TemplateFormatError: If it is not a YAML mapping with ``services``.
    """
    if not compose_file.is_file():
        raise TemplateMissingError(f"Docker Compose file not found at {compose_file}")

    try:
        doc = yaml.safe_load(compose_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise TemplateFormatError(f"Cannot parse {compose_file}: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("services"), dict):
        raise TemplateFormatError(f"{compose_file} has no services section")

    _backup(compose_file)
    prefix = f"{project_id}-"
    host_ports: dict[int, int] = {}
    warnings: list[str] = []
    for container, role in COMPOSE_PORT_ROLES.items():
        port = getattr(block, role)
        if port is None:
            warnings.append(
                f"No {role} port recorded; mapping for container port {container} left unchanged."
            )
        else:
            host_ports[container] = port
    matched: set[int] = set()

    for name, service in doc["services"].items():
        if not isinstance(service, dict):
            continue
        container_name = service.get("container_name")
        if isinstance(container_name, str) and not container_name.startswith(prefix):
            service["container_name"] = prefix + container_name
        if isinstance(service.get("ports"), list):
            remapped = []
            for entry in service["ports"]:
                new_entry, target = _remap_port(entry, host_ports)
                if target is not None:
                    matched.add(target)
                    logger.debug("%s: %r -> %r", name, entry, new_entry)
                remapped.append(new_entry)
            service["ports"] = remapped

    compose_file.write_text(
        yaml.safe_dump(doc, sort_keys=False, default_flow_style=False, width=4096),
        encoding="utf-8",
    )
    logger.info("Updated %s for project %s", compose_file, project_id)

    warnings += [
        f"No host mapping for container port {container} ({role}) in "
        f"{compose_file.name}; left unchanged."
        for container, role in COMPOSE_PORT_ROLES.items()
        if container in host_ports and container not in matched
    ]
    return warnings


# ── config.toml ───────────────────────────────────────────────────────


def _toml_lookup(doc: dict, section: str | None, key: str) -> Any:
    node: Any = doc
    if section:
        for part in section.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(part)
    return node.get(key) if isinstance(node, dict) else None


def rewrite_cli_config(config_file: Path, project_id: str, block: PortBlock) -> list[str]:
    """Set ``project_id`` and the section ports in the Supabase CLI config.

    The file is optional: when it is absent a single warning is returned.
    Comments and layout are preserved; only the values of the targeted keys
    change.

    Raises:
        TemplateFormatError: If the file is not valid TOML.
    """
    if not config_file.is_file():
        return [f"CLI config file not found at {config_file}; skipped."]

    text = config_file.read_text(encoding="utf-8")
    try:
        tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise TemplateFormatError(f"Cannot parse {config_file}: {e}") from e

    wanted: dict[tuple[str | None, str], tuple[str, Any]] = {
        (None, "project_id"): (f'"{project_id}"', project_id),
    }
    for section, keys in CLI_CONFIG_PORTS.items():
        for key, role in keys.items():
            port = getattr(block, role)
            wanted[(section, key)] = (str(port), port)

    section: str | None = None
    out: list[str] = []
    for line in text.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body):]
        header = _TOML_SECTION.match(body)
        assign = _TOML_ASSIGN.match(body)
        if _TOML_ARRAY_SECTION.match(body):
            section = "[[array]]"
        elif header:
            section = header.group("name").strip()
        elif assign and (section, assign.group("key")) in wanted:
            literal, _ = wanted[(section, assign.group("key"))]
            body = (
                f"{assign.group('indent')}{assign.group('key')}"
                f"{assign.group('eq')}{literal}{assign.group('rest')}"
            )
        out.append(body + ending)

    new_text = "".join(out)
    try:
        doc = tomllib.loads(new_text)
    except tomllib.TOMLDecodeError as e:
        raise TemplateFormatError(f"Rewriting {config_file} produced invalid TOML: {e}") from e

    _backup(config_file)
    config_file.write_text(new_text, encoding="utf-8")
    logger.info("Updated %s", config_file)

    warnings = []
    for (sec, key), (_, expected) in wanted.items():
        if _toml_lookup(doc, sec, key) != expected:
            where = f"[{sec}] {key}" if sec else key
            warnings.append(f"{config_file.name} has no {where}; skipped.")
    return warnings


# ── all project files ─────────────────────────────────────────────────


def render_project_files(project_id: str, block: PortBlock, paths: ProjectPaths) -> list[str]:
    """Apply a port block to ``.env``, the compose file and the CLI config.

    Returns:
        Collected warnings, in file order.

    Raises:
        TemplateMissingError: If ``.env`` or the compose file is missing.
    """
    warnings = apply_env_ports(paths, block)
    warnings += rewrite_compose(paths.compose_file, project_id, block)
    warnings += rewrite_cli_config(paths.cli_config, project_id, block)
    for warning in warnings:
        logger.warning(warning)
    return warnings
