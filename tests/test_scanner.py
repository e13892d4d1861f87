"""Tests for project discovery"""

import os
import sys
import tempfile
import unittest
from pathlib import Path

from darp_cli.errors import DomainUnreadable
from darp_cli.scanner import scan, scan_list


class ScanTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.domain = Path(self.tmp.name) / "projects"
        self.domain.mkdir()

    def tearDown(self):
        self.tmp.cleanup()

    def test_lists_visible_directories_sorted(self):
        for name in ("web", "api", ".git", ".cache", "admin"):
            (self.domain / name).mkdir()
        (self.domain / "notes.txt").write_text("not a project")
        (self.domain / ".env").write_text("SECRET=1")

        self.assertEqual(list(scan(self.domain)), ["admin", "api", "web"])

    def test_empty_domain(self):
        self.assertEqual(scan_list(self.domain), [])

    def test_accepts_string_path(self):
        (self.domain / "api").mkdir()
        self.assertEqual(scan_list(str(self.domain)), ["api"])

    def test_each_scan_sees_current_state(self):
        (self.domain / "api").mkdir()
        self.assertEqual(scan_list(self.domain), ["api"])
        (self.domain / "web").mkdir()
        (self.domain / "api").rmdir()
        self.assertEqual(scan_list(self.domain), ["web"])

    def test_missing_directory(self):
        gen = scan(self.domain / "missing")
        with self.assertRaises(DomainUnreadable) as ctx:
            list(gen)
        self.assertIn("does not exist", str(ctx.exception))

    def test_file_instead_of_directory(self):
        path = self.domain / "file"
        path.write_text("x")
        with self.assertRaises(DomainUnreadable):
            scan_list(path)

    @unittest.skipIf(sys.platform == "win32" or (hasattr(os, "geteuid") and os.geteuid() == 0), "needs POSIX non-root")
    def test_permission_denied(self):
        locked = self.domain / "locked"
        locked.mkdir()
        locked.chmod(0)
        try:
            with self.assertRaises(DomainUnreadable) as ctx:
                scan_list(locked)
            self.assertIn("permission denied", str(ctx.exception))
        finally:
            locked.chmod(0o755)


if __name__ == "__main__":
    unittest.main()
