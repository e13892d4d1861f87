"""Tests for resolver rendering and the hosts file block"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from darp_cli.dns import (
    HOSTS_BEGIN,
    HOSTS_END,
    HostsFile,
    ResolutionMode,
    extract_block,
    render,
    render_container_hosts,
    render_dnsmasq,
    splice_block,
)
from darp_cli.errors import HostsFileError, InvalidHostLabel

ASSIGNMENTS = {("projects", "api"): 50100, ("projects", "web"): 50101, ("old", "gone"): 50102}


class ModeTests(unittest.TestCase):
    def test_mode_from_flag(self):
        self.assertIs(ResolutionMode.from_flag(False), ResolutionMode.DNSMASQ)
        self.assertIs(ResolutionMode.from_flag(True), ResolutionMode.HOSTS)


class RenderTests(unittest.TestCase):
    def test_dnsmasq_rules(self):
        text = render_dnsmasq(["projects", "clients", "projects"])
        lines = text.splitlines()
        self.assertTrue(lines[0].startswith("# Auto-generated"))
        self.assertEqual(lines[1:], ["address=/clients.test/127.0.0.1", "address=/projects.test/127.0.0.1"])

    def test_dnsmasq_mode_ignores_assignments(self):
        self.assertEqual(render(["projects"], ResolutionMode.DNSMASQ, ASSIGNMENTS), render_dnsmasq(["projects"]))

    def test_hosts_mode_lists_projects_of_given_domains(self):
        text = render(["projects"], ResolutionMode.HOSTS, ASSIGNMENTS)
        self.assertEqual(text, "127.0.0.1   api.projects.test\n127.0.0.1   web.projects.test\n")

    def test_hosts_mode_without_projects(self):
        self.assertEqual(render(["projects"], ResolutionMode.HOSTS, {}), "")

    def test_invalid_domain(self):
        with self.assertRaises(InvalidHostLabel):
            render_dnsmasq(["bad_domain"])

    def test_container_hosts(self):
        text = render_container_hosts({("projects", "api"): 50100})
        self.assertEqual(text, "127.0.0.1   localhost\n0.0.0.0   api.projects.test\n")


class SpliceTests(unittest.TestCase):
    def test_insert_into_plain_file(self):
        result = splice_block("127.0.0.1 localhost\n", ["127.0.0.1   api.projects.test"])
        self.assertEqual(
            result,
            f"127.0.0.1 localhost\n\n{HOSTS_BEGIN}\n127.0.0.1   api.projects.test\n{HOSTS_END}\n",
        )

    def test_replace_existing_block_keeps_surroundings(self):
        content = (
            "127.0.0.1 localhost\n\n"
            f"{HOSTS_BEGIN}\n127.0.0.1   old.projects.test\n{HOSTS_END}\n\n"
            "::1 localhost\n"
        )
        result = splice_block(content, ["127.0.0.1   new.projects.test"])
        self.assertIn("127.0.0.1 localhost", result)
        self.assertIn("::1 localhost", result)
        self.assertNotIn("old.projects.test", result)
        self.assertEqual(extract_block(result), ["127.0.0.1   new.projects.test"])
        self.assertEqual(result.count(HOSTS_BEGIN), 1)

    def test_empty_lines_remove_block(self):
        content = f"127.0.0.1 localhost\n\n{HOSTS_BEGIN}\n127.0.0.1   a.b.test\n{HOSTS_END}\n"
        self.assertEqual(splice_block(content, []), "127.0.0.1 localhost\n")

    def test_crlf_content(self):
        result = splice_block("127.0.0.1 localhost\r\n", ["127.0.0.1   a.b.test"])
        self.assertNotIn("\r", result)
        self.assertEqual(extract_block(result), ["127.0.0.1   a.b.test"])


class HostsFileTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "hosts"
        self.original = "127.0.0.1 localhost\n::1 localhost\n"
        self.path.write_text(self.original)
        self.hosts = HostsFile(self.path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_sync_writes_block_once(self):
        lines = ["127.0.0.1   api.projects.test"]
        self.assertTrue(self.hosts.sync(lines))
        self.assertEqual(self.hosts.entries(), lines)
        self.assertFalse(self.hosts.sync(lines))

    def test_clear_restores_original(self):
        self.hosts.sync(["127.0.0.1   api.projects.test"])
        self.assertTrue(self.hosts.clear())
        self.assertEqual(self.path.read_text(), self.original)
        self.assertFalse(self.hosts.clear())

    def test_clear_without_block_does_not_touch_file(self):
        with patch.object(HostsFile, "_write") as write:
            self.assertFalse(self.hosts.clear())
        write.assert_not_called()

    def test_missing_file_reads_empty(self):
        hosts = HostsFile(Path(self.tmp.name) / "nope")
        self.assertEqual(hosts.read(), "")
        self.assertEqual(hosts.entries(), [])

    def test_write_failure_is_reported(self):
        with patch("darp_cli.dns.privileged_write", side_effect=HostsFileError("denied")):
            with self.assertRaises(HostsFileError):
                self.hosts.sync(["127.0.0.1   api.projects.test"])


if __name__ == "__main__":
    unittest.main()
