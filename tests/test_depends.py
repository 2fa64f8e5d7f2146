# =============================================================================
# CROSSFORGE DEPENDS CLIENT TESTS
# =============================================================================

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from crossforge.domain.models import PlatformFamily, Target
from crossforge.infra.depends import DependsClient, DependsError


def _done(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@patch("crossforge.infra.depends.subprocess.run")
class TestPrintVars:
    """Test print-<NAME> queries."""

    def test_command_line(self, mock_run, tmp_path):
        """HOST and extra variables precede the print targets."""
        mock_run.return_value = _done(0, "OSX_SDK=/sdks/Xcode-15.0\n")
        client = DependsClient(tmp_path)

        value = client.print_var("OSX_SDK", host="arm64-apple-darwin", variables={"SDK_PATH": "/sdks"})

        assert value == "/sdks/Xcode-15.0"
        cmd = mock_run.call_args.args[0]
        assert cmd[:4] == ["make", "-C", str(tmp_path / "depends"), "--no-print-directory"]
        assert cmd[cmd.index("--") + 1 :] == ["print-OSX_SDK"]
        assert "HOST=arm64-apple-darwin" in cmd
        assert "SDK_PATH=/sdks" in cmd

    def test_unset_values_are_empty(self, mock_run, tmp_path):
        """Names depends does not print come back empty."""
        mock_run.return_value = _done(0, "SOURCES_PATH=/depends/sources\nmake: noise\n")
        values = DependsClient(tmp_path).print_vars(["SOURCES_PATH", "BASE_CACHE"])
        assert values == {"SOURCES_PATH": "/depends/sources", "BASE_CACHE": ""}

    def test_failure(self, mock_run, tmp_path):
        """A failing make query raises DependsError."""
        mock_run.return_value = _done(2, "", "No rule to make target")
        with pytest.raises(DependsError) as excinfo:
            DependsClient(tmp_path).print_vars(["SDK_PATH"])
        assert "No rule" in excinfo.value.context["stderr"]


@patch("crossforge.infra.depends.subprocess.run")
class TestDownload:
    """Test per-family source downloads."""

    def test_family_target(self, mock_run, tmp_path):
        """The download target is keyed by platform family."""
        mock_run.return_value = _done(0)
        client = DependsClient(tmp_path, jobs=4, verbose=True, sources_path=Path("/cache/src"))

        client.download(Target(triple="x86_64-apple-darwin", family=PlatformFamily.MACOS))

        cmd = mock_run.call_args.args[0]
        assert "download-osx" in cmd
        assert "-j4" in cmd
        assert "V=1" in cmd
        assert "SOURCES_PATH=/cache/src" in cmd

    def test_download_failure(self, mock_run, tmp_path):
        """A non-zero make exit is a DependsError."""
        mock_run.return_value = _done(2)
        with pytest.raises(DependsError, match="x86_64-w64-mingw32"):
            DependsClient(tmp_path).download(
                Target(triple="x86_64-w64-mingw32", family=PlatformFamily.WINDOWS)
            )

    def test_make_missing(self, mock_run, tmp_path):
        """A missing make binary is reported."""
        mock_run.side_effect = FileNotFoundError("make")
        with pytest.raises(DependsError, match="Could not run make"):
            DependsClient(tmp_path).download(
                Target(triple="x86_64-linux-gnu", family=PlatformFamily.LINUX)
            )
