"""Tests for the docker/podman adapter"""

import subprocess
import unittest
from pathlib import Path
from unittest.mock import patch

from darp_cli.config import Config
from darp_cli.engine import (
    RESOLVER,
    REVERSE_PROXY,
    Engine,
    EngineKind,
    RunRequest,
    resolver_request,
    reverse_proxy_request,
)
from darp_cli.errors import ConfigError, EngineInvocationFailed, EngineTimeout
from darp_cli.paths import DarpPaths


class RecordingRunner:
    """Stands in for subprocess.run and replays canned results per verb"""

    def __init__(self, outputs=None, returncode=0, stderr=""):
        self.calls = []
        self.outputs = outputs or {}
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, args, **kwargs):
        self.calls.append((list(args), kwargs))
        stdout = self.outputs.get(args[1], "")
        return subprocess.CompletedProcess(args, self.returncode, stdout=stdout, stderr=self.stderr)


class EngineKindTests(unittest.TestCase):
    def test_from_config(self):
        self.assertIs(EngineKind.from_config(Config(engine="Docker")), EngineKind.DOCKER)
        self.assertIs(EngineKind.from_config(Config(engine="podman")), EngineKind.PODMAN)

    def test_from_config_requires_engine(self):
        with self.assertRaises(ConfigError):
            EngineKind.from_config(Config())
        with self.assertRaises(ConfigError):
            EngineKind.from_config(Config(engine="lxc"))

    def test_host_gateway(self):
        self.assertEqual(EngineKind.DOCKER.host_gateway, "host.docker.internal")
        self.assertEqual(EngineKind.PODMAN.host_gateway, "host.containers.internal")

    def test_platform_flags(self):
        self.assertEqual(EngineKind.DOCKER.platform_args("linux/arm64"), ["--platform", "linux/arm64"])
        self.assertEqual(EngineKind.PODMAN.platform_args("linux/arm64"), ["--os", "linux", "--arch", "arm64"])
        self.assertEqual(EngineKind.PODMAN.platform_args("amd64"), ["--arch", "amd64"])

    def test_capabilities(self):
        self.assertEqual(EngineKind.DOCKER.file_watch_mode, "native")
        self.assertEqual(EngineKind.PODMAN.file_watch_mode, "polling")
        self.assertTrue(EngineKind.PODMAN.needs_elevated_privileges(True))
        self.assertFalse(EngineKind.PODMAN.needs_elevated_privileges(False))
        self.assertFalse(EngineKind.DOCKER.needs_elevated_privileges(True))


class RunArgsTests(unittest.TestCase):
    def setUp(self):
        self.paths = DarpPaths(root=Path("/state"))

    def test_reverse_proxy_args(self):
        engine = Engine(EngineKind.DOCKER)
        self.assertEqual(
            engine.run_args(reverse_proxy_request(self.paths)),
            [
                "docker", "run", "--rm", "-d",
                "--name", REVERSE_PROXY,
                "-v", "/state/vhost_container.conf:/etc/nginx/conf.d/vhost_container.conf",
                "-p", "80:80",
                "nginx",
            ],
        )  # fmt: skip

    def test_resolver_args(self):
        args = Engine(EngineKind.PODMAN).run_args(resolver_request(self.paths))
        self.assertEqual(args[:6], ["podman", "run", "--rm", "-d", "--name", RESOLVER])
        self.assertIn("53:53/udp", args)
        self.assertIn("53:53/tcp", args)
        self.assertIn("--cap-add=NET_ADMIN", args)
        self.assertEqual(args[-1], "dockurr/dnsmasq")

    def test_interactive_request_with_platform_and_command(self):
        request = RunRequest(
            name="darp_projects_api",
            image="node:20",
            command=["sh", "-c", "exec sh"],
            ports=[("50100", "8000")],
            platform="linux/amd64",
            interactive=True,
            env={"B": "2", "A": "1"},
        )
        args = Engine(EngineKind.PODMAN).run_args(request)
        self.assertEqual(args[:4], ["podman", "run", "--rm", "-it"])
        self.assertIn("--os", args)
        self.assertLess(args.index("-e"), args.index("node:20"))
        self.assertEqual(args[args.index("-e") + 1], "A=1")
        self.assertEqual(args[-4:], ["node:20", "sh", "-c", "exec sh"])


class InvocationTests(unittest.TestCase):
    def test_is_running_reads_ps(self):
        runner = RecordingRunner(outputs={"ps": "darp-masq\nother\n\n"})
        engine = Engine(EngineKind.DOCKER, runner=runner)
        self.assertTrue(engine.is_running("darp-masq"))
        self.assertFalse(engine.is_running("darp-reverse-proxy"))
        args, kwargs = runner.calls[0]
        self.assertEqual(args, ["docker", "ps", "--format", "{{.Names}}"])
        self.assertEqual(kwargs["timeout"], 5)
        self.assertTrue(kwargs["capture_output"])

    def test_nonzero_exit_raises_with_stderr(self):
        runner = RecordingRunner(returncode=125, stderr="port is already allocated\n")
        engine = Engine(EngineKind.DOCKER, runner=runner)
        with self.assertRaises(EngineInvocationFailed) as ctx:
            engine.run(reverse_proxy_request(DarpPaths(root=Path("/state"))))
        self.assertEqual(ctx.exception.reason, "port is already allocated")

    def test_timeout_raises(self):
        def runner(args, **kwargs):
            raise subprocess.TimeoutExpired(args, kwargs["timeout"])

        engine = Engine(EngineKind.DOCKER, runner=runner)
        with self.assertRaises(EngineTimeout) as ctx:
            engine.stop("darp-masq")
        self.assertEqual(ctx.exception.timeout, 30)

    def test_missing_binary(self):
        def runner(args, **kwargs):
            raise FileNotFoundError(2, "No such file or directory")

        engine = Engine(EngineKind.PODMAN, runner=runner)
        with self.assertRaises(EngineInvocationFailed):
            engine.running_containers()

    def test_stop_if_running(self):
        runner = RecordingRunner(outputs={"ps": "darp-reverse-proxy\n"})
        engine = Engine(EngineKind.DOCKER, runner=runner)
        self.assertTrue(engine.stop_if_running("darp-reverse-proxy"))
        self.assertFalse(engine.stop_if_running("darp-masq"))
        stops = [args for args, _ in runner.calls if args[1] == "stop"]
        self.assertEqual(stops, [["docker", "stop", "darp-reverse-proxy"]])

    def test_restart_reports_whether_container_was_running(self):
        request = reverse_proxy_request(DarpPaths(root=Path("/state")))

        runner = RecordingRunner(outputs={"ps": "darp-reverse-proxy\n"})
        self.assertTrue(Engine(EngineKind.DOCKER, runner=runner).restart(request))
        self.assertEqual([args[1] for args, _ in runner.calls], ["ps", "stop", "run"])

        runner = RecordingRunner()
        self.assertFalse(Engine(EngineKind.DOCKER, runner=runner).restart(request))
        self.assertEqual([args[1] for args, _ in runner.calls], ["ps", "run"])

    def test_stop_project_containers_only_touches_darp_prefix(self):
        runner = RecordingRunner(outputs={"ps": "darp_projects_api\ndarp-masq\npostgres\ndarp_clients_shop\n"})
        engine = Engine(EngineKind.DOCKER, runner=runner)
        self.assertEqual(engine.stop_project_containers(), ["darp_projects_api", "darp_clients_shop"])

    def test_run_attached_returns_exit_code(self):
        runner = RecordingRunner(returncode=3)
        engine = Engine(EngineKind.DOCKER, runner=runner)
        code = engine.run_attached(RunRequest(name="darp_p_a", image="alpine", interactive=True))
        self.assertEqual(code, 3)
        args, kwargs = runner.calls[0]
        self.assertNotIn("capture_output", kwargs)


class ReadinessTests(unittest.TestCase):
    def test_docker_info(self):
        runner = RecordingRunner()
        Engine(EngineKind.DOCKER, runner=runner).require_ready()
        self.assertEqual(runner.calls[0][0], ["docker", "info"])

    def test_docker_not_running(self):
        runner = RecordingRunner(returncode=1, stderr="Cannot connect to the Docker daemon")
        with self.assertRaises(EngineInvocationFailed) as ctx:
            Engine(EngineKind.DOCKER, runner=runner).require_ready()
        self.assertIn("Docker does not appear to be running", str(ctx.exception))

    def test_podman_machine_running(self):
        runner = RecordingRunner(outputs={"machine": "podman-machine-default* true\nother false\n"})
        Engine(EngineKind.PODMAN, podman_machine="podman-machine-default", runner=runner).require_ready()

    def test_podman_machine_down(self):
        runner = RecordingRunner(outputs={"machine": "dev false\n"})
        with self.assertRaises(EngineInvocationFailed) as ctx:
            Engine(EngineKind.PODMAN, podman_machine="dev", runner=runner).require_ready()
        self.assertIn("podman machine start dev", str(ctx.exception))

    def test_podman_without_machine_on_linux(self):
        runner = RecordingRunner()
        with patch("darp_cli.engine.sys.platform", "linux"):
            Engine(EngineKind.PODMAN, runner=runner).require_ready()
        self.assertEqual(runner.calls[0][0], ["podman", "info"])


if __name__ == "__main__":
    unittest.main()
