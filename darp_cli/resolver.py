"""
Effective settings resolution.

Merges, highest precedence first:
1. command-line overrides supplied by the caller
2. the Service entry for the project inside its domain
3. the Environment named by the override, the Service, or the Domain default
4. built-in defaults

Every field is resolved on its own, so a service may override only
serve_command and still inherit image and volumes from its environment.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config, Environment, Service, Volume
from .errors import MissingImage, UnknownDomain, UnknownEnvironment

logger = logging.getLogger("darp.resolver")

DEFAULT_SHELL_COMMAND = "sh"

PWD_TOKEN = "{pwd}"
HOME_TOKEN = "{home}"


@dataclass(frozen=True)
class ResolutionContext:
    """Values substituted into mount paths at resolution time."""

    home: Path
    project_dir: Path

    def expand(self, template: str) -> str:
        return template.replace(PWD_TOKEN, str(self.project_dir)).replace(HOME_TOKEN, str(self.home))


@dataclass(frozen=True)
class Overrides:
    """Command-line values that beat every configured layer."""

    environment: str | None = None
    image: str | None = None
    serve_command: str | None = None
    shell_command: str | None = None
    platform: str | None = None


@dataclass(frozen=True)
class ResolvedVolume:
    host: str
    container: str


@dataclass
class EffectiveSettings:
    domain: str
    project: str
    project_dir: Path
    environment: str | None = None
    image: str | None = None
    base_image: str | None = None
    image_repository: str | None = None
    shell_command: str = DEFAULT_SHELL_COMMAND
    serve_command: str | None = None
    platform: str | None = None
    port_mappings: dict[str, str] = field(default_factory=dict)
    volumes: list[ResolvedVolume] = field(default_factory=list)


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _pick_environment(
    config: Config,
    domain_name: str,
    project: str,
    service: Service | None,
    default_environment: str | None,
    overrides: Overrides,
) -> tuple[str | None, Environment | None]:
    if overrides.environment is not None:
        name, referenced_by = overrides.environment, "the command line"
    elif service is not None and service.environment is not None:
        name, referenced_by = service.environment, f"service '{domain_name}.{project}'"
    elif default_environment is not None:
        name, referenced_by = default_environment, f"domain '{domain_name}'"
    else:
        return (None, None)

    env = config.environments.get(name)
    if env is None:
        raise UnknownEnvironment(name, referenced_by)
    return (name, env)


def _layer_value(attr: str, service: Service | None, env: Environment | None):
    return _first(
        getattr(service, attr) if service is not None else None,
        getattr(env, attr) if env is not None else None,
    )


def _expand_volumes(volumes: list[Volume] | None, context: ResolutionContext) -> list[ResolvedVolume]:
    return [ResolvedVolume(host=context.expand(v.host), container=v.container) for v in volumes or []]


def resolve(
    config: Config,
    domain: str,
    project_name: str,
    context: ResolutionContext,
    overrides: Overrides | None = None,
    require_image: bool = True,
) -> EffectiveSettings:
    """
    Compute effective settings for one project.

    Args:
        config: Loaded configuration snapshot
        domain: Domain name or domain location key
        project_name: Project directory name inside the domain
        context: Home and project directories for placeholder expansion
        overrides: Command-line values
        require_image: Raise MissingImage when no layer provides an image

    Raises:
        UnknownDomain, UnknownEnvironment, MissingImage
    """
    overrides = overrides or Overrides()

    found = config.find_domain(domain)
    if found is None:
        raise UnknownDomain(domain)
    _location, dom = found

    service = dom.services.get(project_name)
    env_name, env = _pick_environment(config, dom.name, project_name, service, dom.default_environment, overrides)

    base_image = _first(overrides.image, _layer_value("default_container_image", service, env))
    repository = _layer_value("image_repository", service, env)

    if base_image is None:
        if require_image:
            raise MissingImage(dom.name, project_name, env_name)
        image = None
    elif repository:
        image = f"{repository}:{base_image}"
    else:
        image = base_image

    settings = EffectiveSettings(
        domain=dom.name,
        project=project_name,
        project_dir=context.project_dir,
        environment=env_name,
        image=image,
        base_image=base_image,
        image_repository=repository,
        shell_command=_first(overrides.shell_command, _layer_value("shell_command", service, env), DEFAULT_SHELL_COMMAND),
        serve_command=_first(overrides.serve_command, _layer_value("serve_command", service, env)),
        platform=_first(overrides.platform, _layer_value("platform", service, env)),
        port_mappings=dict(_layer_value("host_portmappings", service, env) or {}),
        volumes=_expand_volumes(_layer_value("volumes", service, env), context),
    )
    logger.debug(
        "Resolved %s.%s: environment=%s image=%s", settings.project, settings.domain, settings.environment, settings.image
    )
    return settings
