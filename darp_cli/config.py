"""Configuration model for config.json: domains, services and environments"""

import json
import logging
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .validation import slugify_name, validate_engine, validate_port

logger = logging.getLogger("darp.config")

DEFAULT_BASE_PORT = 50100

# Scalar settings shared by environments and services
LAYER_FIELDS = ("serve_command", "shell_command", "image_repository", "default_container_image", "platform")
SERVICE_FIELDS = ("environment",) + LAYER_FIELDS


def _optional_str(data: dict, key: str, where: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{where}: '{key}' must be a string")
    return value


def _portmap_from(data: dict, where: str) -> dict[str, str] | None:
    value = data.get("host_portmappings")
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: 'host_portmappings' must be an object")
    return {str(k): str(v) for k, v in value.items()}


def _volumes_from(data: dict, where: str) -> list["Volume"] | None:
    value = data.get("volumes")
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(f"{where}: 'volumes' must be a list")
    return [Volume.from_dict(item, where) for item in value]


@dataclass(frozen=True)
class Volume:
    host: str
    container: str

    @classmethod
    def from_dict(cls, data: Any, where: str = "volume") -> "Volume":
        if not isinstance(data, dict) or not data.get("host") or not data.get("container"):
            raise ConfigError(f"{where}: volumes need both 'host' and 'container'")
        return cls(host=str(data["host"]), container=str(data["container"]))

    def to_dict(self) -> dict:
        return {"container": self.container, "host": self.host}


@dataclass
class SettingsLayer:
    """Fields that both an environment and a service may set."""

    serve_command: str | None = None
    shell_command: str | None = None
    image_repository: str | None = None
    default_container_image: str | None = None
    platform: str | None = None
    host_portmappings: dict[str, str] | None = None
    volumes: list[Volume] | None = None

    @classmethod
    def _kwargs_from(cls, data: Any, where: str) -> dict:
        if not isinstance(data, dict):
            raise ConfigError(f"{where} must be an object")
        kwargs: dict[str, Any] = {key: _optional_str(data, key, where) for key in LAYER_FIELDS}
        kwargs["host_portmappings"] = _portmap_from(data, where)
        kwargs["volumes"] = _volumes_from(data, where)
        return kwargs

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "volumes":
                value = [v.to_dict() for v in value]
            elif f.name == "host_portmappings":
                value = dict(value)
            out[f.name] = value
        return out


@dataclass
class Environment(SettingsLayer):
    """Named, reusable settings template."""

    @classmethod
    def from_dict(cls, data: Any, name: str = "") -> "Environment":
        return cls(**cls._kwargs_from(data, f"environment '{name}'"))


@dataclass
class Service(SettingsLayer):
    """Per-project overrides inside a domain."""

    environment: str | None = None

    @classmethod
    def from_dict(cls, data: Any, name: str = "") -> "Service":
        where = f"service '{name}'"
        kwargs = cls._kwargs_from(data, where)
        kwargs["environment"] = _optional_str(data, "environment", where)
        return cls(**kwargs)


@dataclass
class Domain:
    name: str
    services: dict[str, Service] = field(default_factory=dict)
    default_environment: str | None = None

    @classmethod
    def from_dict(cls, data: Any, location: str = "") -> "Domain":
        where = f"domain at '{location}'"
        if not isinstance(data, dict) or not isinstance(data.get("name"), str) or not data["name"]:
            raise ConfigError(f"{where} needs a 'name'")
        services_in = data.get("services") or {}
        if not isinstance(services_in, dict):
            raise ConfigError(f"{where}: 'services' must be an object")
        return cls(
            name=data["name"],
            services={str(k): Service.from_dict(v, str(k)) for k, v in services_in.items()},
            default_environment=_optional_str(data, "default_environment", where),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"name": self.name}
        if self.services:
            out["services"] = {k: self.services[k].to_dict() for k in sorted(self.services)}
        if self.default_environment is not None:
            out["default_environment"] = self.default_environment
        return out


@dataclass
class Config:
    """
    In-memory snapshot of config.json.

    Loaded once at command start and written back explicitly by mutating
    commands. Domains are keyed by absolute host path, environments by name.
    """

    engine: str | None = None
    podman_machine: str | None = None
    urls_in_hosts: bool = False
    base_port: int = DEFAULT_BASE_PORT
    domains: dict[str, Domain] = field(default_factory=dict)
    environments: dict[str, Environment] = field(default_factory=dict)

    # ─────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("config.json must contain a JSON object")

        urls_in_hosts = data.get("urls_in_hosts")
        if urls_in_hosts is not None and not isinstance(urls_in_hosts, bool):
            raise ConfigError("'urls_in_hosts' must be true or false")

        base_port = data.get("base_port", DEFAULT_BASE_PORT)
        if isinstance(base_port, bool) or not isinstance(base_port, int):
            raise ConfigError("'base_port' must be an integer")
        validate_port(base_port)

        domains_in = data.get("domains") or {}
        environments_in = data.get("environments") or {}
        if not isinstance(domains_in, dict):
            raise ConfigError("'domains' must be an object keyed by location")
        if not isinstance(environments_in, dict):
            raise ConfigError("'environments' must be an object keyed by name")

        return cls(
            engine=_optional_str(data, "engine", "config"),
            podman_machine=_optional_str(data, "podman_machine", "config"),
            urls_in_hosts=bool(urls_in_hosts),
            base_port=base_port,
            domains={str(k): Domain.from_dict(v, str(k)) for k, v in domains_in.items()},
            environments={str(k): Environment.from_dict(v, str(k)) for k, v in environments_in.items()},
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        if self.engine is not None:
            out["engine"] = self.engine
        if self.podman_machine is not None:
            out["podman_machine"] = self.podman_machine
        out["urls_in_hosts"] = self.urls_in_hosts
        out["base_port"] = self.base_port
        out["domains"] = {k: self.domains[k].to_dict() for k in sorted(self.domains)}
        out["environments"] = {k: self.environments[k].to_dict() for k in sorted(self.environments)}
        return out

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load config.json, creating an empty one on first use"""
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("{}", encoding="utf-8")
            logger.info("Created empty config at %s", path)
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {path}: {e}") from e

        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        """Write config.json atomically with owner-only permissions"""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
            if sys.platform != "win32":
                tmp.chmod(0o600)
            tmp.replace(path)
        except OSError as e:
            raise ConfigError(f"Failed to save config: {e}") from e
        logger.debug("Saved config to %s", path)

    # ─────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────

    def find_domain(self, name_or_location: str) -> tuple[str, Domain] | None:
        """Find a domain by its name or by its exact location key"""
        if name_or_location in self.domains:
            return (name_or_location, self.domains[name_or_location])
        for location, domain in self.domains.items():
            if domain.name == name_or_location:
                return (location, domain)
        return None

    def _require_domain(self, domain_name: str) -> Domain:
        found = self.find_domain(domain_name)
        if found is None:
            raise ConfigError(f"domain, {domain_name}, does not exist")
        return found[1]

    def _require_environment(self, env_name: str) -> Environment:
        env = self.environments.get(env_name)
        if env is None:
            raise ConfigError(f"Environment '{env_name}' does not exist.")
        return env

    def _require_service(self, domain_name: str, service_name: str) -> Service:
        domain = self._require_domain(domain_name)
        service = domain.services.get(service_name)
        if service is None:
            raise ConfigError(f"service, {service_name}, does not exist")
        return service

    def _service_for_update(self, domain_name: str, service_name: str) -> Service:
        domain = self._require_domain(domain_name)
        return domain.services.setdefault(service_name, Service())

    # ─────────────────────────────────────────────────────────────
    # Global settings
    # ─────────────────────────────────────────────────────────────

    def set_engine(self, engine: str) -> None:
        self.engine = validate_engine(engine)

    def set_podman_machine(self, machine: str) -> None:
        if not machine.strip():
            raise ConfigError("Podman machine name cannot be empty")
        self.podman_machine = machine.strip()

    def rm_podman_machine(self) -> None:
        if self.podman_machine is None:
            raise ConfigError("No podman machine is configured.")
        self.podman_machine = None

    def set_base_port(self, port: int | str) -> None:
        self.base_port = validate_port(port)

    # ─────────────────────────────────────────────────────────────
    # Domains
    # ─────────────────────────────────────────────────────────────

    def add_domain(self, location: str) -> tuple[str, str]:
        """Register a directory as a domain. Returns (name, location key)."""
        loc_path = Path(location).expanduser()
        if not loc_path.name:
            raise ConfigError(f"Could not determine domain name from {location}")
        try:
            loc_abs = loc_path.resolve(strict=True)
        except OSError as e:
            raise ConfigError(f"Failed to canonicalize domain location '{location}': {e}") from e
        if not loc_abs.is_dir():
            raise ConfigError(f"Domain location '{loc_abs}' is not a directory")

        loc_key = str(loc_abs)
        domain_name = slugify_name(loc_abs.name)

        if loc_key in self.domains:
            raise ConfigError(f"Domain with location '{loc_key}' already exists.")
        if any(d.name == domain_name for d in self.domains.values()):
            raise ConfigError(f"Domain name '{domain_name}' already exists. Domain names must be unique.")

        self.domains[loc_key] = Domain(name=domain_name)
        return (domain_name, loc_key)

    def rm_domain(self, name_or_location: str) -> str:
        found = self.find_domain(name_or_location)
        if found is None:
            raise ConfigError(f"domain {name_or_location} does not exist")
        location, domain = found
        del self.domains[location]
        return domain.name

    def set_domain_default_environment(self, domain_name: str, env_name: str) -> None:
        self._require_environment(env_name)
        self._require_domain(domain_name).default_environment = env_name

    def rm_domain_default_environment(self, domain_name: str) -> None:
        domain = self._require_domain(domain_name)
        if domain.default_environment is None:
            raise ConfigError(f"Domain '{domain_name}' has no default_environment.")
        domain.default_environment = None

    # ─────────────────────────────────────────────────────────────
    # Environment settings
    # ─────────────────────────────────────────────────────────────

    def add_environment(self, env_name: str) -> None:
        if not env_name.strip():
            raise ConfigError("Environment name cannot be empty")
        if env_name in self.environments:
            raise ConfigError(f"Environment '{env_name}' already exists.")
        self.environments[env_name] = Environment()

    def rm_environment(self, env_name: str) -> None:
        self._require_environment(env_name)
        users = sorted(d.name for d in self.domains.values() if d.default_environment == env_name)
        users += sorted(
            f"{d.name}.{s}" for d in self.domains.values() for s, svc in d.services.items() if svc.environment == env_name
        )
        if users:
            raise ConfigError(f"Environment '{env_name}' is still used by: {', '.join(users)}")
        del self.environments[env_name]

    def set_env_field(self, env_name: str, field_name: str, value: str) -> None:
        if field_name not in LAYER_FIELDS:
            raise ConfigError(f"Unknown environment setting: {field_name}")
        setattr(self._require_environment(env_name), field_name, value)

    def rm_env_field(self, env_name: str, field_name: str) -> None:
        if field_name not in LAYER_FIELDS:
            raise ConfigError(f"Unknown environment setting: {field_name}")
        env = self._require_environment(env_name)
        if getattr(env, field_name) is None:
            raise ConfigError(f"Environment '{env_name}' has no custom {field_name}.")
        setattr(env, field_name, None)

    def add_env_portmap(self, env_name: str, host_port: str, container_port: str) -> None:
        env = self.environments.setdefault(env_name, Environment())
        maps = env.host_portmappings if env.host_portmappings is not None else {}
        if host_port in maps:
            raise ConfigError(
                f"Portmapping on host side for environment '{env_name}' ({host_port}:____) already exists"
            )
        maps[host_port] = container_port
        env.host_portmappings = maps

    def rm_env_portmap(self, env_name: str, host_port: str) -> None:
        env = self._require_environment(env_name)
        if not env.host_portmappings or host_port not in env.host_portmappings:
            raise ConfigError(
                f"Portmapping on host side for environment '{env_name}' ({host_port}:____) does not exist"
            )
        del env.host_portmappings[host_port]

    def add_env_volume(self, env_name: str, container_dir: str, host_dir: str) -> None:
        env = self.environments.setdefault(env_name, Environment())
        volume = Volume(host=host_dir, container=container_dir)
        vols = env.volumes if env.volumes is not None else []
        if volume in vols:
            raise ConfigError(
                f"Volume mapping already exists for environment '{env_name}': {host_dir} -> {container_dir}"
            )
        vols.append(volume)
        env.volumes = vols

    def rm_env_volume(self, env_name: str, container_dir: str, host_dir: str) -> None:
        env = self._require_environment(env_name)
        volume = Volume(host=host_dir, container=container_dir)
        if not env.volumes or volume not in env.volumes:
            raise ConfigError(
                f"No matching volume found in environment '{env_name}' "
                f"for host '{host_dir}' -> container '{container_dir}'"
            )
        env.volumes = [v for v in env.volumes if v != volume]

    # ─────────────────────────────────────────────────────────────
    # Service settings
    # ─────────────────────────────────────────────────────────────

    def set_service_field(self, domain_name: str, service_name: str, field_name: str, value: str) -> None:
        if field_name not in SERVICE_FIELDS:
            raise ConfigError(f"Unknown service setting: {field_name}")
        if field_name == "environment":
            self._require_environment(value)
        setattr(self._service_for_update(domain_name, service_name), field_name, value)

    def rm_service_field(self, domain_name: str, service_name: str, field_name: str) -> None:
        if field_name not in SERVICE_FIELDS:
            raise ConfigError(f"Unknown service setting: {field_name}")
        service = self._require_service(domain_name, service_name)
        if getattr(service, field_name) is None:
            raise ConfigError(f"Service '{domain_name}.{service_name}' has no custom {field_name}.")
        setattr(service, field_name, None)

    def add_service_portmap(self, domain_name: str, service_name: str, host_port: str, container_port: str) -> None:
        service = self._service_for_update(domain_name, service_name)
        maps = service.host_portmappings if service.host_portmappings is not None else {}
        if host_port in maps:
            raise ConfigError(
                f"Portmapping on host side '{domain_name}.{service_name}' ({host_port}:____) already exists"
            )
        maps[host_port] = container_port
        service.host_portmappings = maps

    def rm_service_portmap(self, domain_name: str, service_name: str, host_port: str) -> None:
        service = self._require_service(domain_name, service_name)
        if not service.host_portmappings or host_port not in service.host_portmappings:
            raise ConfigError(
                f"Portmapping on host side '{domain_name}.{service_name}' ({host_port}:____) does not exist"
            )
        del service.host_portmappings[host_port]

    def add_service_volume(self, domain_name: str, service_name: str, container_dir: str, host_dir: str) -> None:
        service = self._service_for_update(domain_name, service_name)
        volume = Volume(host=host_dir, container=container_dir)
        vols = service.volumes if service.volumes is not None else []
        if volume in vols:
            raise ConfigError(
                f"Volume mapping already exists for service '{domain_name}.{service_name}': "
                f"{host_dir} -> {container_dir}"
            )
        vols.append(volume)
        service.volumes = vols

    def rm_service_volume(self, domain_name: str, service_name: str, container_dir: str, host_dir: str) -> None:
        service = self._require_service(domain_name, service_name)
        volume = Volume(host=host_dir, container=container_dir)
        if not service.volumes or volume not in service.volumes:
            raise ConfigError(
                f"No matching volume found in service '{domain_name}.{service_name}' "
                f"for host '{host_dir}' -> container '{container_dir}'"
            )
        service.volumes = [v for v in service.volumes if v != volume]
