"""Tests for the deploy reconciler"""

import json
import subprocess
import tempfile
import unittest
from pathlib import Path

from darp_cli.config import Config, Domain, Environment, Service
from darp_cli.deploy import Reconciler
from darp_cli.dns import HOSTS_BEGIN
from darp_cli.engine import RESOLVER, REVERSE_PROXY, Engine, EngineKind
from darp_cli.errors import DeployError
from darp_cli.paths import DarpPaths


class FakeContainerRuntime:
    """Minimal docker CLI double that tracks which containers are running"""

    def __init__(self, fail_run_for=()):
        self.running: set[str] = set()
        self.calls: list[list[str]] = []
        self.fail_run_for = set(fail_run_for)

    def __call__(self, args, **kwargs):
        args = list(args)
        self.calls.append(args)
        verb = args[1]
        if verb == "ps":
            return subprocess.CompletedProcess(args, 0, stdout="".join(f"{n}\n" for n in sorted(self.running)), stderr="")
        if verb == "run":
            name = args[args.index("--name") + 1]
            if name in self.fail_run_for:
                return subprocess.CompletedProcess(args, 125, stdout="", stderr="port 80 is already allocated")
            self.running.add(name)
        elif verb == "stop":
            self.running.discard(args[2])
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    def lifecycle_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c[1] in {"run", "stop"}]


class DeployTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name).resolve()
        self.domain_dir = self.base / "projects"
        for name in ("api", "web", ".git"):
            (self.domain_dir / name).mkdir(parents=True)
        (self.domain_dir / "README.md").write_text("hello")

        self.hosts_path = self.base / "hosts"
        self.hosts_original = "127.0.0.1 localhost\n"
        self.hosts_path.write_text(self.hosts_original)

        self.paths = DarpPaths(root=self.base / "darp", hosts_file=self.hosts_path)
        self.config = Config(
            engine="docker",
            domains={str(self.domain_dir): Domain(name="projects", default_environment="node")},
            environments={"node": Environment(default_container_image="node:20")},
        )
        self.runtime = FakeContainerRuntime()
        self.engine = Engine(EngineKind.DOCKER, runner=self.runtime)

    def tearDown(self):
        self.tmp.cleanup()

    def deploy(self):
        return Reconciler(self.config, self.paths, self.engine, home=self.base).deploy()

    def actions(self, report) -> dict[str, str]:
        return {c.name: c.action for c in report.containers}


class FirstDeployTests(DeployTestCase):
    def test_assigns_ports_and_writes_artifacts(self):
        report = self.deploy()

        self.assertTrue(report.ok, report.failures)
        self.assertEqual(report.assignments, {("projects", "api"): 50100, ("projects", "web"): 50101})
        self.assertEqual(
            json.loads(self.paths.portmap_path.read_text()),
            {"projects": {"api": 50100, "web": 50101}},
        )

        vhosts = self.paths.vhost_container_conf.read_text()
        self.assertIn("server_name api.projects.test;", vhosts)
        self.assertIn("proxy_pass http://host.docker.internal:50101/;", vhosts)
        self.assertNotIn(".git", vhosts)

        self.assertIn("address=/projects.test/127.0.0.1", self.paths.dnsmasq_conf.read_text())
        self.assertIn("0.0.0.0   web.projects.test", self.paths.hosts_container_path.read_text())
        self.assertEqual(self.hosts_path.read_text(), self.hosts_original)

    def test_starts_support_containers(self):
        report = self.deploy()
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "started", RESOLVER: "started"})
        self.assertEqual(self.runtime.running, {REVERSE_PROXY, RESOLVER})

    def test_project_urls(self):
        report = self.deploy()
        self.assertEqual([p.url for p in report.projects], ["http://api.projects.test", "http://web.projects.test"])

    def test_no_domains(self):
        self.config.domains.clear()
        with self.assertRaises(DeployError):
            self.deploy()


class IdempotenceTests(DeployTestCase):
    def test_second_deploy_restarts_nothing(self):
        self.deploy()
        vhosts = self.paths.vhost_container_conf.read_text()
        before = len(self.runtime.lifecycle_calls())

        report = self.deploy()

        self.assertTrue(report.ok)
        self.assertEqual(report.restarts, 0)
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "unchanged", RESOLVER: "unchanged"})
        self.assertEqual(len(self.runtime.lifecycle_calls()), before)
        self.assertFalse(any(a.changed for a in report.artifacts))
        self.assertEqual(self.paths.vhost_container_conf.read_text(), vhosts)

    def test_unchanged_but_stopped_container_is_started(self):
        self.deploy()
        self.runtime.running.discard(RESOLVER)
        report = self.deploy()
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "unchanged", RESOLVER: "started"})

    def test_new_project_restarts_only_proxy(self):
        self.deploy()
        (self.domain_dir / "admin").mkdir()

        report = self.deploy()

        self.assertEqual(report.assignments[("projects", "admin")], 50102)
        self.assertEqual(report.assignments[("projects", "api")], 50100)
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "restarted", RESOLVER: "unchanged"})

    def test_removed_project_releases_port(self):
        self.deploy()
        (self.domain_dir / "web").rmdir()
        report = self.deploy()
        self.assertEqual(report.domains[0].released, ["web"])
        self.assertNotIn("web.projects.test", self.paths.vhost_container_conf.read_text())

        (self.domain_dir / "zzz").mkdir()
        report = self.deploy()
        self.assertEqual(report.assignments[("projects", "zzz")], 50101)

    def test_ports_of_removed_domains_are_released(self):
        self.paths.root.mkdir(parents=True)
        self.paths.portmap_path.write_text(json.dumps({"old": {"legacy": 50100}}))

        report = self.deploy()

        self.assertEqual(report.assignments[("projects", "api")], 50100)
        self.assertNotIn("old", json.loads(self.paths.portmap_path.read_text()))


class ResolutionModeTests(DeployTestCase):
    def test_toggle_to_hosts_and_back(self):
        self.deploy()

        self.config.urls_in_hosts = True
        report = self.deploy()
        hosts = self.hosts_path.read_text()
        self.assertIn(HOSTS_BEGIN, hosts)
        self.assertIn("127.0.0.1   api.projects.test", hosts)
        self.assertIn("127.0.0.1 localhost", hosts)
        self.assertFalse(self.paths.dnsmasq_conf.exists())
        self.assertEqual(self.actions(report)[RESOLVER], "stopped")
        self.assertNotIn(RESOLVER, self.runtime.running)

        report = self.deploy()
        self.assertEqual(report.restarts, 0)

        self.config.urls_in_hosts = False
        report = self.deploy()
        self.assertEqual(self.hosts_path.read_text(), self.hosts_original)
        self.assertTrue(self.paths.dnsmasq_conf.exists())
        self.assertEqual(self.actions(report)[RESOLVER], "started")


class ProjectContainerTests(DeployTestCase):
    def test_changed_mounts_stop_project_containers(self):
        self.deploy()
        self.runtime.running.update({"darp_projects_api", "postgres"})
        (self.domain_dir / "admin").mkdir()

        report = self.deploy()

        self.assertEqual(self.actions(report)["darp_projects_api"], "stopped")
        self.assertEqual(self.runtime.running, {REVERSE_PROXY, RESOLVER, "postgres"})
        self.assertTrue(report.ok)

    def test_unchanged_deploy_leaves_project_containers_running(self):
        self.deploy()
        self.runtime.running.add("darp_projects_api")

        report = self.deploy()

        self.assertNotIn("darp_projects_api", self.actions(report))
        self.assertIn("darp_projects_api", self.runtime.running)
        self.assertEqual(report.restarts, 0)


class ScopedFailureTests(DeployTestCase):
    def test_invalid_domain_name_does_not_block_other_domains(self):
        bad_dir = self.base / "My_Stuff"
        (bad_dir / "notes").mkdir(parents=True)
        self.config.domains[str(bad_dir)] = Domain(name="My_Stuff", default_environment="node")

        report = self.deploy()

        self.assertFalse(report.ok)
        bad = [d for d in report.domains if d.name == "My_Stuff"][0]
        self.assertIn("not a valid hostname label", bad.error)
        self.assertEqual([a.name for a in report.artifacts if a.error], [])
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "started", RESOLVER: "started"})

        vhosts = self.paths.vhost_container_conf.read_text()
        self.assertIn("api.projects.test", vhosts)
        self.assertNotIn("My_Stuff", vhosts)
        self.assertNotIn("My_Stuff", self.paths.dnsmasq_conf.read_text())
        self.assertEqual(report.assignments, {("projects", "api"): 50100, ("projects", "web"): 50101})

    def test_unknown_environment_fails_only_that_project(self):
        self.config.domains[str(self.domain_dir)].services["web"] = Service(environment="ruby")

        report = self.deploy()

        self.assertFalse(report.ok)
        outcomes = {p.project: p for p in report.projects}
        self.assertTrue(outcomes["api"].ok)
        self.assertIn("ruby", outcomes["web"].error)
        self.assertIsNone(outcomes["web"].port)
        vhosts = self.paths.vhost_container_conf.read_text()
        self.assertIn("api.projects.test", vhosts)
        self.assertNotIn("web.projects.test", vhosts)

    def test_missing_image_does_not_block_deploy(self):
        self.config.environments["node"].default_container_image = None
        report = self.deploy()
        self.assertTrue(report.ok, report.failures)
        self.assertEqual(len(report.assignments), 2)

    def test_invalid_project_name(self):
        (self.domain_dir / "my_app").mkdir()
        report = self.deploy()
        bad = [p for p in report.projects if p.project == "my_app"][0]
        self.assertIn("not a valid hostname label", bad.error)
        self.assertNotIn(("projects", "my_app"), report.assignments)
        self.assertEqual(len(report.assignments), 2)

    def test_unreadable_domain_keeps_previous_assignments(self):
        other = self.base / "clients"
        (other / "shop").mkdir(parents=True)
        self.config.domains[str(other)] = Domain(name="clients", default_environment="node")
        first = self.deploy()
        self.assertEqual(first.assignments[("clients", "shop")], 50100)

        (other / "shop").rmdir()
        other.rmdir()
        report = self.deploy()

        self.assertFalse(report.ok)
        clients = [d for d in report.domains if d.name == "clients"][0]
        self.assertIn("does not exist", clients.error)
        self.assertIn("shop.clients.test", self.paths.vhost_container_conf.read_text())
        self.assertIn("clients", json.loads(self.paths.portmap_path.read_text()))
        self.assertEqual(report.assignments[("projects", "api")], first.assignments[("projects", "api")])

    def test_engine_failure_is_scoped_to_the_container(self):
        self.runtime.fail_run_for.add(REVERSE_PROXY)

        report = self.deploy()

        self.assertFalse(report.ok)
        self.assertEqual(self.actions(report), {REVERSE_PROXY: "failed", RESOLVER: "started"})
        self.assertTrue(self.paths.vhost_container_conf.exists())
        self.assertTrue(self.paths.portmap_path.exists())
        self.assertIn("already allocated", report.failures[0])


if __name__ == "__main__":
    unittest.main()
