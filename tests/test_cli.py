"""Tests for the command line probe."""

import json
from unittest.mock import patch

import pytest

from reachability_probe import cli
from reachability_probe.checks import FakeCheckPrimitive
from reachability_probe.directory import DirectoryError, StaticDirectory


class TestCli:
    """Tests for cli.main."""

    def test_prints_reachable_hosts(self, capsys):
        """Reachable hosts are printed one per line."""
        primitive = FakeCheckPrimitive(script={"ws-02": "timeout"})

        with patch("reachability_probe.cli.build_primitive", return_value=primitive):
            code = cli.main(["ws-01", "ws-02", "ws-03", "--timeout-ms", "50"])

        assert code == cli.EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["ws-01", "ws-03"]

    def test_json_report(self, capsys):
        """--json prints the full report."""
        primitive = FakeCheckPrimitive(script={"ws-02": "unresolved"})

        with patch("reachability_probe.cli.build_primitive", return_value=primitive):
            code = cli.main(["--json", "ws-01", "ws-02"])

        assert code == cli.EXIT_OK
        report = json.loads(capsys.readouterr().out)
        assert report["reachable"] == ["ws-01"]
        assert [o["status"] for o in report["outcomes"]] == ["reachable", "unresolved"]

    def test_hosts_from_directory(self, capsys):
        """Without hosts the configured directory is used."""
        primitive = FakeCheckPrimitive()
        directory = StaticDirectory(["WS-01", "SRV-01"])

        with (
            patch("reachability_probe.cli.build_primitive", return_value=primitive),
            patch("reachability_probe.cli.build_directory", return_value=directory),
        ):
            code = cli.main(["--filter", "srv-*"])

        assert code == cli.EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["SRV-01"]

    def test_unsupported_platform(self, capsys):
        """PlatformUnsupported exits with a failure code and no output."""
        primitive = FakeCheckPrimitive(supported=False)

        with patch("reachability_probe.cli.build_primitive", return_value=primitive):
            code = cli.main(["ws-01"])

        assert code == cli.EXIT_FAILURE
        assert capsys.readouterr().out == ""
        assert primitive.issued == []

    def test_directory_failure(self):
        """Directory errors exit with a failure code."""
        directory = StaticDirectory([])

        with (
            patch(
                "reachability_probe.cli.build_primitive",
                return_value=FakeCheckPrimitive(),
            ),
            patch("reachability_probe.cli.build_directory", return_value=directory),
            patch.object(directory, "lookup", side_effect=DirectoryError("no file")),
        ):
            code = cli.main([])

        assert code == cli.EXIT_FAILURE

    def test_rejects_bad_concurrency(self):
        """Concurrency below one is a usage error."""
        with pytest.raises(SystemExit):
            cli.main(["--concurrency", "0", "ws-01"])

    def test_method_choices(self):
        """Only known methods are accepted."""
        with pytest.raises(SystemExit):
            cli.main(["--method", "udp", "ws-01"])

    def test_misconfigured_directory(self):
        """An LDAP directory without a server exits with a failure code."""
        with (
            patch(
                "reachability_probe.cli.build_primitive",
                return_value=FakeCheckPrimitive(),
            ),
            patch.object(cli.settings, "directory_source", "ldap"),
            patch.object(cli.settings, "ldap_server", ""),
        ):
            code = cli.main([])

        assert code == cli.EXIT_FAILURE

    def test_unknown_directory_source(self):
        """An unknown directory source exits with a failure code."""
        with (
            patch(
                "reachability_probe.cli.build_primitive",
                return_value=FakeCheckPrimitive(),
            ),
            patch.object(cli.settings, "directory_source", "nis"),
        ):
            code = cli.main([])

        assert code == cli.EXIT_FAILURE
