"""
Project containers for ``darp shell`` and ``darp serve``.

The current directory must be a project inside a registered domain. The
container gets the project at /app, the generated hosts file and nginx
config, the resolved volumes and port mappings, and the project's assigned
port published to 8000. An nginx inside the container (when the image has
one) forwards sibling project URLs back out through the host gateway.
"""

import logging
from pathlib import Path

from .config import Config, Domain
from .engine import PROJECT_CONTAINER_PREFIX, RunRequest
from .errors import ConfigError
from .paths import DarpPaths
from .ports import PortStore
from .resolver import EffectiveSettings, Overrides, ResolutionContext, resolve

logger = logging.getLogger("darp.runner")

APP_DIR = "/app"
CONTAINER_HTTP_PORT = "8000"

NGINX_BOOTSTRAP = """if command -v nginx >/dev/null 2>&1; then
    echo "Starting nginx..."; nginx;
else
    echo "nginx not found, skipping";
fi;"""

SHELL_BANNER = """echo "";
echo "To leave this shell and stop the container, type: $(printf '\\033[33m')exit$(printf '\\033[0m')";
echo "";"""


def container_name(domain_name: str, project: str) -> str:
    return f"{PROJECT_CONTAINER_PREFIX}{domain_name}_{project}"


def project_from_cwd(config: Config, cwd: Path) -> tuple[str, Domain, str]:
    """
    Find the domain whose location is the parent of ``cwd``.

    Returns:
        (location, domain, project_name)

    Raises:
        ConfigError: cwd is not directly inside a registered domain
    """
    cwd = Path(cwd)
    try:
        parent = cwd.parent.resolve(strict=True)
    except OSError:
        parent = cwd.parent
    location = str(parent)
    domain = config.domains.get(location)
    if domain is None:
        raise ConfigError(f"domain location '{location}' does not exist in darp's domain configuration.")
    return (location, domain, cwd.name)


def shell_command(settings: EffectiveSettings) -> list[str]:
    inner = f"{NGINX_BOOTSTRAP}\n{SHELL_BANNER}\ncd {APP_DIR}; exec {settings.shell_command}"
    return ["sh", "-c", inner]


def serve_command(settings: EffectiveSettings) -> list[str]:
    if not settings.serve_command:
        raise ConfigError(
            f"No serve_command configured for '{settings.project}.{settings.domain}'. "
            "Set one on the service or its environment."
        )
    inner = f"{NGINX_BOOTSTRAP}\ncd {APP_DIR}; {settings.serve_command}"
    return ["sh", "-c", inner]


class ProjectRunner:
    """Builds the RunRequest for the project in a working directory."""

    def __init__(self, config: Config, paths: DarpPaths, home: Path | None = None):
        self.config = config
        self.paths = paths
        self.home = home or Path.home()

    def settings(self, cwd: Path, overrides: Overrides | None = None) -> EffectiveSettings:
        location, _domain, project = project_from_cwd(self.config, cwd)
        context = ResolutionContext(home=self.home, project_dir=Path(cwd))
        return resolve(self.config, location, project, context, overrides)

    def _assigned_port(self, settings: EffectiveSettings) -> int:
        port = PortStore(self.paths.portmap_path).load().get((settings.domain, settings.project))
        if port is None:
            raise ConfigError(f"port not yet assigned to {settings.project}, run 'darp deploy'")
        return port

    def _request(self, settings: EffectiveSettings, command: list[str]) -> RunRequest:
        port = self._assigned_port(settings)

        volumes = [
            (str(settings.project_dir), APP_DIR),
            (str(self.paths.hosts_container_path), "/etc/hosts"),
            (str(self.paths.nginx_conf_path), "/etc/nginx/nginx.conf"),
            (str(self.paths.vhost_container_conf), "/etc/nginx/http.d/vhost_container.conf"),
        ]
        for volume in settings.volumes:
            if not Path(volume.host).exists():
                raise ConfigError(f"Volume {volume.host} does not appear to exist.")
            volumes.append((volume.host, volume.container))

        ports = list(settings.port_mappings.items())
        ports.append((str(port), CONTAINER_HTTP_PORT))

        return RunRequest(
            name=container_name(settings.domain, settings.project),
            image=settings.image or "",
            command=command,
            volumes=volumes,
            ports=ports,
            platform=settings.platform,
            interactive=True,
        )

    def shell_request(self, cwd: Path, overrides: Overrides | None = None) -> RunRequest:
        settings = self.settings(cwd, overrides)
        return self._request(settings, shell_command(settings))

    def serve_request(self, cwd: Path, overrides: Overrides | None = None) -> RunRequest:
        settings = self.settings(cwd, overrides)
        return self._request(settings, serve_command(settings))


def build_shell_request(config: Config, paths: DarpPaths, cwd: Path, overrides: Overrides | None = None) -> RunRequest:
    return ProjectRunner(config, paths).shell_request(cwd, overrides)


def build_serve_request(config: Config, paths: DarpPaths, cwd: Path, overrides: Overrides | None = None) -> RunRequest:
    return ProjectRunner(config, paths).serve_request(cwd, overrides)
