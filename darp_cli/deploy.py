"""
Deploy reconciliation.

Brings the generated proxy and resolver files, and the support containers
that read them, in line with the projects found in every domain directory.
Running project containers are stopped when a file they bind-mount changes.
Failures are scoped: a broken domain, project or container step is recorded
in the DeployReport and the rest of the pass carries on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from . import dns, proxy
from .artifacts import remove_if_exists, write_if_changed
from .config import Config, Domain
from .engine import PROJECT_CONTAINER_PREFIX, RESOLVER, Engine, RunRequest, resolver_request, reverse_proxy_request
from .errors import DarpError, DeployError, DomainUnreadable, EngineError, InvalidHostLabel, ResolutionError
from .paths import DarpPaths
from .ports import PortAllocator, PortKey, PortStore
from .resolver import ResolutionContext, resolve
from .scanner import scan
from .validation import is_valid_host_label, validate_host_label

logger = logging.getLogger("darp.deploy")

# Generated files that project containers bind-mount as single files
PROJECT_MOUNTED_ARTIFACTS = {"proxy", "container-hosts"}


# ─────────────────────────────────────────────────────────────
# Report
# ─────────────────────────────────────────────────────────────


@dataclass
class ProjectOutcome:
    domain: str
    project: str
    port: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def url(self) -> str:
        return f"http://{proxy.project_url(self.project, self.domain)}"


@dataclass
class DomainOutcome:
    name: str
    location: str
    projects: list[ProjectOutcome] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(p.ok for p in self.projects)


@dataclass
class ArtifactOutcome:
    name: str
    path: str
    changed: bool = False
    error: str | None = None


@dataclass
class ContainerOutcome:
    name: str
    action: str  # unchanged | started | restarted | stopped | skipped | failed
    error: str | None = None


@dataclass
class DeployReport:
    domains: list[DomainOutcome] = field(default_factory=list)
    artifacts: list[ArtifactOutcome] = field(default_factory=list)
    containers: list[ContainerOutcome] = field(default_factory=list)

    @property
    def projects(self) -> list[ProjectOutcome]:
        return [p for d in self.domains for p in d.projects]

    @property
    def assignments(self) -> dict[PortKey, int]:
        return {(p.domain, p.project): p.port for p in self.projects if p.ok and p.port is not None}

    @property
    def restarts(self) -> int:
        return sum(1 for c in self.containers if c.action in {"started", "restarted", "stopped"})

    @property
    def failures(self) -> list[str]:
        out = []
        for d in self.domains:
            if d.error:
                out.append(f"domain {d.name}: {d.error}")
            out.extend(f"{p.project}.{p.domain}: {p.error}" for p in d.projects if p.error)
        out.extend(f"{a.name}: {a.error}" for a in self.artifacts if a.error)
        out.extend(f"{c.name}: {c.error}" for c in self.containers if c.error)
        return out

    @property
    def ok(self) -> bool:
        return not self.failures


# ─────────────────────────────────────────────────────────────
# Reconciler
# ─────────────────────────────────────────────────────────────


class Reconciler:
    """
    One deploy pass over a config snapshot.

    Args:
        config: Loaded configuration (not modified)
        paths: Where artifacts and the port store live
        engine: Container engine adapter used for support containers
        port_store: Port assignment store, defaults to paths.portmap_path
        home: Home directory used for {home} expansion
    """

    def __init__(
        self,
        config: Config,
        paths: DarpPaths,
        engine: Engine,
        port_store: PortStore | None = None,
        home: Path | None = None,
    ):
        self.config = config
        self.paths = paths
        self.engine = engine
        self.port_store = port_store or PortStore(paths.portmap_path)
        self.home = home or Path.home()

    def deploy(self) -> DeployReport:
        if not self.config.domains:
            raise DeployError("Please configure a domain.")

        self.paths.ensure_dirs()
        allocator = self.port_store.allocator(self.config.base_port)
        report = DeployReport()

        domains = sorted(self.config.domains.items(), key=lambda item: item[1].name)
        configured = {domain.name for _location, domain in domains}
        for stale in sorted(allocator.domains() - configured):
            released = allocator.release_domain(stale)
            logger.info("Released %d port(s) of removed domain %s", len(released), stale)

        # Scan and prune everything first so freed ports are visible to every allocation below
        scanned: list[tuple[str, Domain, DomainOutcome, list[str]]] = []
        for location, domain in domains:
            outcome = DomainOutcome(name=domain.name, location=location)
            report.domains.append(outcome)
            try:
                validate_host_label(domain.name)
                projects = list(scan(location))
            except (DomainUnreadable, InvalidHostLabel) as e:
                outcome.error = str(e)
                logger.warning("Skipping domain %s: %s", domain.name, e)
                continue
            outcome.released = allocator.prune(domain.name, projects)
            scanned.append((location, domain, outcome, projects))

        live: dict[PortKey, int] = {}
        for location, domain, outcome, projects in scanned:
            for project in projects:
                result = self._deploy_project(location, domain, project, allocator)
                outcome.projects.append(result)
                if result.ok and result.port is not None:
                    live[(domain.name, project)] = result.port

        # Keep serving what an unreadable domain had before
        for outcome in report.domains:
            if outcome.error is None or not is_valid_host_label(outcome.name):
                continue
            for (domain_name, project), port in allocator.assignments.items():
                if domain_name == outcome.name and is_valid_host_label(project):
                    live[(domain_name, project)] = port

        domain_names = sorted(o.name for o in report.domains if is_valid_host_label(o.name))
        self._sync_proxy(report, live, domain_names)
        self._sync_resolver(report, live, domain_names)
        self._sync_container_hosts(report, live)
        self._stop_stale_projects(report)

        self.port_store.save(allocator.assignments)
        logger.info("Deploy finished: %d project(s), %d failure(s)", len(live), len(report.failures))
        return report

    def _deploy_project(self, location: str, domain: Domain, project: str, allocator: PortAllocator) -> ProjectOutcome:
        outcome = ProjectOutcome(domain=domain.name, project=project)
        try:
            validate_host_label(project)
            context = ResolutionContext(home=self.home, project_dir=Path(location) / project)
            resolve(self.config, location, project, context, require_image=False)
            outcome.port = allocator.allocate(domain.name, project)
        except (InvalidHostLabel, ResolutionError) as e:
            outcome.error = str(e)
            logger.warning("Skipping %s.%s: %s", project, domain.name, e)
        return outcome

    # ─────────────────────────────────────────────────────────────
    # Artifacts and support containers
    # ─────────────────────────────────────────────────────────────

    def _write_artifact(self, report: DeployReport, name: str, path: Path, render) -> ArtifactOutcome:
        outcome = ArtifactOutcome(name=name, path=str(path))
        try:
            outcome.changed = write_if_changed(path, render())
        except (DarpError, OSError) as e:
            outcome.error = str(e)
            logger.error("Failed to write %s: %s", path, e)
        report.artifacts.append(outcome)
        return outcome

    def _sync_container(self, report: DeployReport, request: RunRequest, changed: bool) -> None:
        outcome = ContainerOutcome(name=request.name, action="unchanged")
        try:
            if changed:
                outcome.action = "restarted" if self.engine.restart(request) else "started"
            elif not self.engine.is_running(request.name):
                self.engine.run(request)
                outcome.action = "started"
        except EngineError as e:
            outcome.action = "failed"
            outcome.error = str(e)
            logger.error("Container step for %s failed: %s", request.name, e)
        report.containers.append(outcome)

    def _sync_proxy(self, report: DeployReport, live: dict[PortKey, int], domain_names: list[str]) -> None:
        artifact = self._write_artifact(
            report,
            "proxy",
            self.paths.vhost_container_conf,
            lambda: proxy.render(live, domain_names, upstream_host=self.engine.host_gateway),
        )
        request = reverse_proxy_request(self.paths)
        if artifact.error:
            report.containers.append(ContainerOutcome(name=request.name, action="skipped"))
            return
        self._sync_container(report, request, artifact.changed)

    def _sync_resolver(self, report: DeployReport, live: dict[PortKey, int], domain_names: list[str]) -> None:
        mode = dns.ResolutionMode.from_flag(self.config.urls_in_hosts)
        hosts_file = dns.HostsFile(self.paths.hosts_file)

        if mode is dns.ResolutionMode.DNSMASQ:
            artifact = self._write_artifact(
                report, "resolver", self.paths.dnsmasq_conf, lambda: dns.render(domain_names, mode)
            )
            self._apply_hosts(report, hosts_file, [])
            request = resolver_request(self.paths)
            if artifact.error:
                report.containers.append(ContainerOutcome(name=request.name, action="skipped"))
                return
            self._sync_container(report, request, artifact.changed)
            return

        lines = dns.render(domain_names, mode, live).splitlines()
        self._apply_hosts(report, hosts_file, lines)

        outcome = ArtifactOutcome(name="resolver", path=str(self.paths.dnsmasq_conf))
        try:
            outcome.changed = remove_if_exists(self.paths.dnsmasq_conf)
        except OSError as e:
            outcome.error = str(e)
        report.artifacts.append(outcome)

        container = ContainerOutcome(name=RESOLVER, action="unchanged")
        try:
            if self.engine.stop_if_running(RESOLVER):
                container.action = "stopped"
        except EngineError as e:
            container.action = "failed"
            container.error = str(e)
        report.containers.append(container)

    def _apply_hosts(self, report: DeployReport, hosts_file: dns.HostsFile, lines: list[str]) -> None:
        outcome = ArtifactOutcome(name="hosts-file", path=str(hosts_file.path))
        try:
            outcome.changed = hosts_file.sync(lines)
        except DarpError as e:
            outcome.error = str(e)
            logger.error("Failed to update %s: %s", hosts_file.path, e)
        report.artifacts.append(outcome)

    def _sync_container_hosts(self, report: DeployReport, live: dict[PortKey, int]) -> None:
        self._write_artifact(
            report, "container-hosts", self.paths.hosts_container_path, lambda: dns.render_container_hosts(live)
        )

    def _stop_stale_projects(self, report: DeployReport) -> None:
        """Stop darp_* containers whose bind-mounted proxy or hosts file was just replaced"""
        if not any(a.changed for a in report.artifacts if a.name in PROJECT_MOUNTED_ARTIFACTS):
            return
        try:
            stopped = self.engine.stop_project_containers()
        except EngineError as e:
            report.containers.append(ContainerOutcome(name=f"{PROJECT_CONTAINER_PREFIX}*", action="failed", error=str(e)))
            logger.error("Failed to stop project containers: %s", e)
            return
        for name in stopped:
            report.containers.append(ContainerOutcome(name=name, action="stopped"))
            logger.info("Stopped %s, its mounted config changed", name)


def deploy(config: Config, paths: DarpPaths, engine: Engine, home: Path | None = None) -> DeployReport:
    """Run one reconciliation pass"""
    return Reconciler(config, paths, engine, home=home).deploy()
