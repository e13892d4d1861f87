"""
Container engine adapter for docker and podman.

Both engines take the same RunRequest. The differences between them (binary,
host gateway name, platform flags, file watching, privilege needs) live on
EngineKind, and one Engine class turns requests into CLI invocations.
"""

import logging
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .config import Config
from .errors import ConfigError, EngineInvocationFailed, EngineTimeout
from .paths import DarpPaths
from .subprocess_timeouts import get_timeout

logger = logging.getLogger("darp.engine")

PROJECT_CONTAINER_PREFIX = "darp_"
DEFAULT_PODMAN_MACHINE = "podman-machine-default"

REVERSE_PROXY = "darp-reverse-proxy"
REVERSE_PROXY_IMAGE = "nginx"
RESOLVER = "darp-masq"
RESOLVER_IMAGE = "dockurr/dnsmasq"


class EngineKind(str, Enum):
    DOCKER = "docker"
    PODMAN = "podman"

    @classmethod
    def from_config(cls, config: Config) -> "EngineKind":
        if not config.engine:
            raise ConfigError(
                "No container engine is configured.\n"
                "Use 'darp config set engine podman' or 'darp config set engine docker'."
            )
        try:
            return cls(config.engine.lower())
        except ValueError:
            raise ConfigError(f"Unsupported engine '{config.engine}' (expected podman or docker)") from None

    @property
    def binary(self) -> str:
        return self.value

    @property
    def host_gateway(self) -> str:
        """Hostname under which containers reach the host"""
        if self is EngineKind.PODMAN:
            return "host.containers.internal"
        return "host.docker.internal"

    @property
    def file_watch_mode(self) -> str:
        """'polling' when bind mounts do not deliver inotify events, else 'native'"""
        if self is EngineKind.PODMAN:
            return "polling"
        return "native"

    def needs_elevated_privileges(self, urls_in_hosts: bool) -> bool:
        """Podman needs root to bind the low resolver ports when urls_in_hosts is enabled"""
        return self is EngineKind.PODMAN and urls_in_hosts

    def platform_args(self, platform: str) -> list[str]:
        if self is EngineKind.DOCKER:
            return ["--platform", platform]
        # podman wants --os/--arch; a bare value is an architecture
        os_name, sep, arch = platform.partition("/")
        if sep:
            return ["--os", os_name, "--arch", arch]
        return ["--arch", platform]


@dataclass
class RunRequest:
    """One container start, independent of the engine."""

    name: str
    image: str
    command: list[str] = field(default_factory=list)
    volumes: list[tuple[str, str]] = field(default_factory=list)
    ports: list[tuple[str, str]] = field(default_factory=list)
    platform: str | None = None
    detach: bool = False
    interactive: bool = False
    cap_add: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


Runner = Callable[..., subprocess.CompletedProcess]


class Engine:
    def __init__(self, kind: EngineKind, podman_machine: str | None = None, runner: Runner = subprocess.run):
        self.kind = kind
        self.podman_machine = podman_machine
        self._runner = runner

    @classmethod
    def from_config(cls, config: Config, runner: Runner = subprocess.run) -> "Engine":
        return cls(EngineKind.from_config(config), podman_machine=config.podman_machine, runner=runner)

    @property
    def bin(self) -> str:
        return self.kind.binary

    @property
    def host_gateway(self) -> str:
        return self.kind.host_gateway

    # ─────────────────────────────────────────────────────────────
    # Argument building
    # ─────────────────────────────────────────────────────────────

    def volume_arg(self, host: str, container: str) -> str:
        return f"{host}:{container}"

    def run_args(self, request: RunRequest) -> list[str]:
        args = [self.bin, "run", "--rm"]
        if request.detach:
            args.append("-d")
        elif request.interactive:
            args.append("-it")
        args.extend(["--name", request.name])
        if request.platform:
            args.extend(self.kind.platform_args(request.platform))
        for host, container in request.volumes:
            args.extend(["-v", self.volume_arg(host, container)])
        for host_port, container_port in request.ports:
            args.extend(["-p", f"{host_port}:{container_port}"])
        for key in sorted(request.env):
            args.extend(["-e", f"{key}={request.env[key]}"])
        for cap in request.cap_add:
            args.append(f"--cap-add={cap}")
        args.append(request.image)
        args.extend(request.command)
        return args

    # ─────────────────────────────────────────────────────────────
    # Invocation
    # ─────────────────────────────────────────────────────────────

    def _call(self, args: list[str], operation: str) -> subprocess.CompletedProcess:
        timeout = get_timeout(operation)
        logger.debug("Running: %s", " ".join(args))
        try:
            result = self._runner(args, capture_output=True, text=True, check=False, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise EngineTimeout(args, timeout) from None
        except OSError as e:
            raise EngineInvocationFailed(args, e.strerror or str(e)) from e

        if result.returncode != 0:
            reason = (result.stderr or "").strip() or f"exit code {result.returncode}"
            raise EngineInvocationFailed(args, reason)
        return result

    def require_ready(self) -> None:
        """Check the engine answers before doing real work"""
        if self.kind is EngineKind.DOCKER:
            try:
                self._call([self.bin, "info"], "engine_info")
            except EngineInvocationFailed as e:
                raise EngineInvocationFailed(e.command, "Docker does not appear to be running") from e
            return

        machine = self.podman_machine
        if machine is None and sys.platform != "darwin":
            self._call([self.bin, "info"], "engine_info")
            return

        machine = machine or DEFAULT_PODMAN_MACHINE
        args = [self.bin, "machine", "list", "--format", "{{.Name}} {{.Running}}"]
        result = self._call(args, "engine_machine_list")
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) != 2:
                continue
            name, running = parts[0].rstrip("*"), parts[1]
            if name == machine and running.lower() == "true":
                return
        raise EngineInvocationFailed(
            args, f"Podman machine '{machine}' appears to be down (podman machine start {machine})"
        )

    def running_containers(self) -> list[str]:
        result = self._call([self.bin, "ps", "--format", "{{.Names}}"], "engine_ps")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_running(self, name: str) -> bool:
        return name in self.running_containers()

    def run(self, request: RunRequest) -> None:
        """Start a detached container"""
        self._call(self.run_args(request), "engine_run")
        logger.info("Started %s (%s)", request.name, request.image)

    def run_attached(self, request: RunRequest) -> int:
        """Run a container attached to the terminal and return its exit code"""
        args = self.run_args(request)
        logger.debug("Running attached: %s", " ".join(args))
        try:
            return self._runner(args, check=False).returncode
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping %s", request.name)
            self.stop(request.name)
            return 130
        except OSError as e:
            raise EngineInvocationFailed(args, e.strerror or str(e)) from e

    def stop(self, name: str) -> None:
        """Graceful stop (SIGTERM, then the engine's grace period)"""
        self._call([self.bin, "stop", name], "engine_stop")
        logger.info("Stopped %s", name)

    def stop_if_running(self, name: str) -> bool:
        if not self.is_running(name):
            return False
        self.stop(name)
        return True

    def restart(self, request: RunRequest) -> bool:
        """Stop the container if it is running, then start it again. Returns True if it was running."""
        was_running = self.stop_if_running(request.name)
        self.run(request)
        return was_running

    def stop_project_containers(self) -> list[str]:
        stopped = []
        for name in self.running_containers():
            if name.startswith(PROJECT_CONTAINER_PREFIX):
                self.stop(name)
                stopped.append(name)
        return stopped

    def watch_mode_note(self) -> str:
        if self.kind.file_watch_mode == "polling":
            return (
                "podman bind mounts do not forward file change events: configure reloaders to poll "
                "(e.g. CHOKIDAR_USEPOLLING=true, WATCHFILES_FORCE_POLLING=true)"
            )
        return "docker bind mounts forward file change events: native file watching works"


# ─────────────────────────────────────────────────────────────
# Support containers
# ─────────────────────────────────────────────────────────────


def reverse_proxy_request(paths: DarpPaths) -> RunRequest:
    return RunRequest(
        name=REVERSE_PROXY,
        image=REVERSE_PROXY_IMAGE,
        detach=True,
        ports=[("80", "80")],
        volumes=[(str(paths.vhost_container_conf), "/etc/nginx/conf.d/vhost_container.conf")],
    )


def resolver_request(paths: DarpPaths) -> RunRequest:
    return RunRequest(
        name=RESOLVER,
        image=RESOLVER_IMAGE,
        detach=True,
        ports=[("53", "53/udp"), ("53", "53/tcp")],
        volumes=[(str(paths.dnsmasq_dir), "/etc/dnsmasq.d")],
        cap_add=["NET_ADMIN"],
    )
