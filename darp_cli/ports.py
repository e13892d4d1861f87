"""
Stable port assignment per project.

Assignments live in portmap.json as {domain_name: {project_name: port}} so a
project's URL and host port survive re-deploys. Allocation is a logical
reservation only: nothing here binds or connects to sockets.
"""

import json
import logging
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import psutil

from .config import DEFAULT_BASE_PORT
from .errors import ConfigError, PortExhausted

logger = logging.getLogger("darp.ports")

MAX_PORT = 65535

PortKey = tuple[str, str]


class PortAllocator:
    """Hands out one port per (domain, project), never moving an existing one."""

    def __init__(self, assignments: dict[PortKey, int] | None = None, base_port: int = DEFAULT_BASE_PORT):
        self.base_port = base_port
        self._assignments: dict[PortKey, int] = dict(assignments or {})

    @property
    def assignments(self) -> dict[PortKey, int]:
        """Copy of the current map, sorted by key"""
        return {key: self._assignments[key] for key in sorted(self._assignments)}

    def get(self, domain_name: str, project_name: str) -> int | None:
        return self._assignments.get((domain_name, project_name))

    def allocate(self, domain_name: str, project_name: str) -> int:
        """Return the project's port, assigning the lowest free one on first use"""
        key = (domain_name, project_name)
        existing = self._assignments.get(key)
        if existing is not None:
            return existing

        used = set(self._assignments.values())
        port = self.base_port
        while port in used:
            port += 1
        if port > MAX_PORT:
            raise PortExhausted(f"No free port left between {self.base_port} and {MAX_PORT}")

        self._assignments[key] = port
        logger.info("Assigned port %d to %s.%s", port, project_name, domain_name)
        return port

    def allocate_all(self, keys: Iterable[PortKey]) -> dict[PortKey, int]:
        """Allocate several projects in lexicographic (domain, project) order"""
        return {key: self.allocate(*key) for key in sorted(set(keys))}

    def release(self, domain_name: str, project_name: str) -> int | None:
        port = self._assignments.pop((domain_name, project_name), None)
        if port is not None:
            logger.info("Released port %d from %s.%s", port, project_name, domain_name)
        return port

    def release_domain(self, domain_name: str) -> list[int]:
        keys = sorted(key for key in self._assignments if key[0] == domain_name)
        return [self._assignments.pop(key) for key in keys]

    def prune(self, domain_name: str, live_projects: Iterable[str]) -> list[str]:
        """Release projects of a domain that are no longer present. Returns their names."""
        live = set(live_projects)
        gone = sorted(p for (d, p) in self._assignments if d == domain_name and p not in live)
        for project in gone:
            self.release(domain_name, project)
        return gone

    def domains(self) -> set[str]:
        return {d for (d, _p) in self._assignments}


@dataclass
class PortStore:
    """portmap.json reader/writer"""

    path: Path

    def load(self) -> dict[PortKey, int]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {self.path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{self.path} must contain a JSON object")

        assignments: dict[PortKey, int] = {}
        for domain_name, projects in data.items():
            if not isinstance(projects, dict):
                raise ConfigError(f"{self.path}: entry '{domain_name}' must be an object")
            for project_name, port in projects.items():
                if isinstance(port, bool) or not isinstance(port, int):
                    raise ConfigError(f"{self.path}: port for {project_name}.{domain_name} must be an integer")
                assignments[(str(domain_name), str(project_name))] = port
        return assignments

    def save(self, assignments: dict[PortKey, int]) -> None:
        nested: dict[str, dict[str, int]] = {}
        for (domain_name, project_name) in sorted(assignments):
            nested.setdefault(domain_name, {})[project_name] = assignments[(domain_name, project_name)]

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(nested, indent=2) + "\n", encoding="utf-8")
            if sys.platform != "win32":
                tmp.chmod(0o600)
            tmp.replace(self.path)
        except OSError as e:
            raise ConfigError(f"Failed to save port assignments: {e}") from e

    def allocator(self, base_port: int = DEFAULT_BASE_PORT) -> PortAllocator:
        return PortAllocator(self.load(), base_port=base_port)


def listening_ports() -> set[int]:
    """Ports with a listening TCP socket on this host (best effort)"""
    ports: set[int] = set()
    try:
        for conn in psutil.net_connections(kind="tcp"):
            if conn.status == psutil.CONN_LISTEN and conn.laddr:
                ports.add(conn.laddr.port)
    except (psutil.AccessDenied, PermissionError):
        # macOS needs root to list other users' sockets
        logger.debug("Not allowed to list listening sockets")
    return ports
