"""Tests for the command-line interface."""

from __future__ import annotations

import argparse
import asyncio
import json

import httpx
import pytest

from otter_proxy import cli
from otter_proxy.cli import COMMANDS, _run_command, build_parser
from tests.conftest import json_response, make_speeches


def _args(*argv):
    return build_parser().parse_args(["--username", "jane@example.com", "--password", "secret", *argv])


class TestParser:
    def test_every_command_has_a_subparser(self):
        parser = build_parser()
        subparsers = next(
            a for a in parser._actions if isinstance(a, argparse._SubParsersAction)
        )
        assert set(COMMANDS) | {"serve"} == set(subparsers.choices)

    def test_download_defaults(self):
        args = build_parser().parse_args(["download", "sp-1"])
        assert args.speech_id == "sp-1"
        assert args.formats == "txt,pdf,mp3,docx,srt"
        assert args.name is None

    def test_speeches_source_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["speeches", "--source", "everything"])

    def test_serve_options(self):
        args = build_parser().parse_args(["serve", "--port", "8080"])
        assert args.port == 8080
        assert args.host is None

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRunCommand:
    def test_prints_result_as_json(self, fake_otter, capsys):
        fake_otter.route("GET", "speeches", json_response(200, {"speeches": make_speeches("o", 2)}))

        code = asyncio.run(_run_command(_args("speeches", "--max", "10"), fake_otter.client))

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["total_count"] == 2
        assert out["truncated"] is False

    def test_all_speeches_output(self, fake_otter, capsys):
        fake_otter.route("GET", "speeches", json_response(200, {"speeches": make_speeches("x", 1)}))

        code = asyncio.run(_run_command(_args("all-speeches"), fake_otter.client))

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["summary"] == {"owned_count": 1, "shared_count": 1, "total_count": 2}

    def test_download_writes_file(self, fake_otter, tmp_path, capsys):
        fake_otter.route("POST", "bulk_export", httpx.Response(200, content=b"text"))

        code = asyncio.run(_run_command(
            _args("download", "sp-1", "--formats", "txt", "--output-dir", str(tmp_path)),
            fake_otter.client,
        ))

        assert code == 0
        assert (tmp_path / "sp-1.txt").read_bytes() == b"text"
        assert json.loads(capsys.readouterr().out)["filename"] == "sp-1.txt"

    def test_login_failure_exits_1(self, fake_otter, capsys):
        fake_otter.route("GET", "login", json_response(401, {}))

        code = asyncio.run(_run_command(_args("user"), fake_otter.client))

        assert code == 1
        assert "login failed with status 401" in capsys.readouterr().err

    def test_non_2xx_result_exits_1(self, fake_otter, capsys):
        fake_otter.route("GET", "speech", json_response(404, {"detail": "nope"}))

        code = asyncio.run(_run_command(_args("speech", "sp-1"), fake_otter.client))

        assert code == 1
        assert json.loads(capsys.readouterr().out) == {"detail": "nope"}

    def test_domain_error_exits_1(self, fake_otter, capsys):
        fake_otter.route("GET", "speakers", httpx.ConnectError("down"))

        code = asyncio.run(_run_command(_args("speakers"), fake_otter.client))

        assert code == 1
        assert "Get speakers failed" in capsys.readouterr().err

    def test_missing_credentials_exits_1(self, fake_otter, monkeypatch, capsys):
        monkeypatch.delenv("OTTER_USERNAME", raising=False)
        monkeypatch.delenv("OTTER_PASSWORD", raising=False)
        args = build_parser().parse_args(["user"])

        code = asyncio.run(_run_command(args, fake_otter.client))

        assert code == 1
        assert "credentials not configured" in capsys.readouterr().err
        assert fake_otter.requests == []

    def test_credentials_from_environment(self, fake_otter, monkeypatch):
        monkeypatch.setenv("OTTER_USERNAME", "env@example.com")
        monkeypatch.setenv("OTTER_PASSWORD", "pw")
        fake_otter.route("GET", "user", json_response(200, {"user": {}}))

        code = asyncio.run(_run_command(build_parser().parse_args(["user"]), fake_otter.client))

        assert code == 0
        assert fake_otter.calls("login")[0].url.params["username"] == "env@example.com"


class TestMain:
    def test_exit_code_is_propagated(self, monkeypatch):
        async def fake_run(args):
            return 3

        monkeypatch.setattr(cli, "_run_command", fake_run)
        monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["user"])
        assert excinfo.value.code == 3
