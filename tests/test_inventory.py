"""
Tests for the installed-package inventory query.
"""

import subprocess
from unittest.mock import patch

from provisioner.core.services.provision.detection.inventory import installed_packages

_MOD = "provisioner.core.services.provision.detection.inventory"


def _completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestInstalledPackages:
    @patch(f"{_MOD}.subprocess.run")
    @patch(f"{_MOD}.shutil.which", return_value="/sbin/apk")
    def test_apk(self, _which, mock_run):
        mock_run.return_value = _completed(stdout="musl\nbusybox\n\nlibpq\n")
        assert installed_packages("apk") == {"musl", "busybox", "libpq"}
        assert mock_run.call_args[0][0] == ["apk", "info"]

    @patch(f"{_MOD}.subprocess.run")
    @patch(f"{_MOD}.shutil.which", return_value="/usr/bin/dpkg-query")
    def test_apt_uses_dpkg_query(self, _which, mock_run):
        mock_run.return_value = _completed(stdout="libc6\n")
        assert installed_packages("apt") == {"libc6"}
        assert mock_run.call_args[0][0][0] == "dpkg-query"

    @patch(f"{_MOD}.shutil.which", return_value=None)
    def test_tool_missing(self, _which):
        assert installed_packages("apk") == frozenset()

    def test_unknown_manager(self):
        assert installed_packages("yum") == frozenset()

    @patch(f"{_MOD}.subprocess.run")
    @patch(f"{_MOD}.shutil.which", return_value="/sbin/apk")
    def test_nonzero_exit(self, _which, mock_run):
        mock_run.return_value = _completed(returncode=1, stderr="locked")
        assert installed_packages("apk") == frozenset()

    @patch(f"{_MOD}.subprocess.run", side_effect=subprocess.TimeoutExpired("apk", 30))
    @patch(f"{_MOD}.shutil.which", return_value="/sbin/apk")
    def test_timeout(self, _which, _run):
        assert installed_packages("apk") == frozenset()
