"""
Tests for retryguard/cli.py

Tests cover:
- Retrying a real subprocess until it succeeds
- Exit codes for exhaustion, missing or non-executable commands, usage errors
  and interruption
- --env-file before or after the subcommand
- Settings output
"""

import asyncio
import json
import logging
import os
import signal
import sys

import pytest

from retryguard import cli
from retryguard.cli import (
    EXIT_EXHAUSTED,
    EXIT_INTERRUPTED,
    EXIT_NOT_EXECUTABLE,
    EXIT_NOT_FOUND,
    EXIT_OK,
    EXIT_USAGE,
    build_parser,
    main,
)
from retryguard.executor import CancellationToken


@pytest.fixture(autouse=True)
def restore_logging(clean_env):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def counting_script(counter, succeed_on):
    """Python one-liner that bumps a counter file and fails until call `succeed_on`."""
    return (
        "import pathlib, sys\n"
        f"p = pathlib.Path({str(counter)!r})\n"
        "n = int(p.read_text()) + 1 if p.exists() else 1\n"
        "p.write_text(str(n))\n"
        f"sys.exit(0 if n >= {succeed_on} else 3)\n"
    )


class TestRunCommand:

    def test_success_first_try(self):
        assert main(["run", "--delay", "0", "--", sys.executable, "-c", "pass"]) == EXIT_OK

    def test_retries_until_success(self, tmp_path):
        counter = tmp_path / "count"
        script = counting_script(counter, succeed_on=2)

        code = main(["run", "--attempts", "3", "--delay", "0", "--", sys.executable, "-c", script])

        assert code == EXIT_OK
        assert counter.read_text() == "2"

    def test_exhausted(self, tmp_path):
        counter = tmp_path / "count"
        script = counting_script(counter, succeed_on=99)

        code = main(["run", "--attempts", "2", "--delay", "0", "--", sys.executable, "-c", script])

        assert code == EXIT_EXHAUSTED
        assert counter.read_text() == "2"

    def test_attempts_from_environment(self, tmp_path, clean_env):
        clean_env.setenv("RETRYGUARD_MAX_ATTEMPTS", "4")
        clean_env.setenv("RETRYGUARD_DELAY_SECONDS", "0")
        counter = tmp_path / "count"
        script = counting_script(counter, succeed_on=99)

        assert main(["run", "--", sys.executable, "-c", script]) == EXIT_EXHAUSTED
        assert counter.read_text() == "4"

    def test_missing_command_not_retried(self):
        code = main(["run", "--attempts", "3", "--delay", "0", "--", "definitely-not-a-real-binary-xyz"])
        assert code == EXIT_NOT_FOUND

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_non_executable_not_retried(self, tmp_path):
        script = tmp_path / "not-executable.sh"
        script.write_text("#!/bin/sh\nexit 0\n")
        script.chmod(0o644)

        code = main(["run", "--attempts", "3", "--delay", "0", "--", str(script)])

        assert code == EXIT_NOT_EXECUTABLE

    def test_env_file_after_subcommand(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("RETRYGUARD_MAX_ATTEMPTS=2\nRETRYGUARD_DELAY_SECONDS=0\n")
        counter = tmp_path / "count"
        script = counting_script(counter, succeed_on=99)

        code = main(["run", "--env-file", str(env_file), "--", sys.executable, "-c", script])

        assert code == EXIT_EXHAUSTED
        assert counter.read_text() == "2"

    def test_no_command(self):
        assert main(["run"]) == EXIT_USAGE

    def test_invalid_attempts(self):
        assert main(["run", "--attempts", "0", "--", sys.executable, "-c", "pass"]) == EXIT_USAGE


class TestSettingsCommand:

    def test_prints_json(self, capsys):
        assert main(["settings"]) == EXIT_OK

        data = json.loads(capsys.readouterr().out)
        assert data["max_attempts"] == 3
        assert data["delay_seconds"] == 0.2

    def test_env_file(self, tmp_path, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("RETRYGUARD_MAX_ATTEMPTS=6\n")

        assert main(["--env-file", str(env_file), "settings"]) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["max_attempts"] == 6

    def test_env_file_after_subcommand(self, tmp_path, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("RETRYGUARD_MAX_ATTEMPTS=7\n")

        assert main(["settings", "--env-file", str(env_file)]) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["max_attempts"] == 7

    def test_missing_env_file(self, tmp_path):
        assert main(["settings", "--env-file", str(tmp_path / "absent.env")]) == EXIT_USAGE

    def test_bad_settings(self, clean_env):
        clean_env.setenv("RETRYGUARD_MAX_ATTEMPTS", "-1")
        assert main(["settings"]) == EXIT_USAGE


class TestParser:

    def test_requires_subcommand(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_env_file_defaults_to_none(self):
        assert build_parser().parse_args(["settings"]).env_file is None


SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


class TestInterrupt:

    def test_token_cancel_stops_running_command(self, monkeypatch):
        tokens, calls = [], []
        original_run = cli.run_command

        class RecordingToken(CancellationToken):
            def __init__(self):
                super().__init__()
                tokens.append(self)

        async def run_then_cancel(command):
            calls.append(command)
            asyncio.get_running_loop().call_later(0.2, tokens[0].cancel)
            return await original_run(command)

        monkeypatch.setattr(cli, "CancellationToken", RecordingToken)
        monkeypatch.setattr(cli, "run_command", run_then_cancel)

        code = main(["run", "--attempts", "3", "--delay", "0", "--", *SLEEPER])

        assert code == EXIT_INTERRUPTED
        assert len(calls) == 1

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_sigint_stops_running_command(self, monkeypatch):
        calls = []
        original_run = cli.run_command

        async def run_then_interrupt(command):
            calls.append(command)
            asyncio.get_running_loop().call_later(0.2, os.kill, os.getpid(), signal.SIGINT)
            return await original_run(command)

        monkeypatch.setattr(cli, "run_command", run_then_interrupt)

        code = main(["run", "--attempts", "3", "--delay", "0", "--", *SLEEPER])

        assert code == EXIT_INTERRUPTED
        assert len(calls) == 1
