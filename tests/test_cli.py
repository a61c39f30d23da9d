"""procline command-line tests."""

from __future__ import annotations

import logging
import random
import sys
from pathlib import Path

import pytest

from procline import __version__
from procline.cli import (
    EXIT_START_FAILED,
    EXIT_TIMEOUT,
    build_parser,
    configure_logging,
    main,
)
from procline.config import Config

FAKE_PROC = str(Path(__file__).parent / "fixtures" / "fake_proc.py")


def fake_args(*args: str) -> list[str]:
    return ["--", sys.executable, FAKE_PROC, *args]


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args(["git status"])
        assert args.command == ["git status"]
        assert args.mode == "merged"
        assert args.env == []
        assert args.accept_exit_codes is None
        assert args.timeout is None
        assert args.shell is False

    def test_repeatable_options(self):
        args = build_parser().parse_args(
            ["--env", "A=1", "--env", "B=x=y", "--accept-exit-code", "0",
             "--accept-exit-code", "2", "make"]
        )
        assert args.env == [("A", "1"), ("B", "x=y")]
        assert args.accept_exit_codes == [0, 2]

    def test_bad_env_pair(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--env", "NOVALUE", "ls"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestMain:
    """Test end-to-end runs."""

    @pytest.mark.timeout(10)
    def test_merged_success(self, capsys):
        assert main(fake_args("--lines", "2")) == 0
        assert capsys.readouterr().out == "line1\nline2\n"

    @pytest.mark.timeout(10)
    def test_failure_exit_code_and_stderr(self, capsys):
        assert main(fake_args("--stderr", "bad thing", "--exit-code", "3")) == 3
        assert "bad thing" in capsys.readouterr().err

    @pytest.mark.timeout(10)
    def test_stderr_with_zero_exit_maps_to_one(self, capsys):
        assert main(fake_args("--stderr", "warning")) == 1

    @pytest.mark.timeout(10)
    def test_accept_exit_code(self, capsys):
        assert main(["--accept-exit-code", "5", *fake_args("--exit-code", "5")]) == 0

    @pytest.mark.timeout(10)
    def test_dual_mode(self, capsys):
        code = main(["--mode", "dual", *fake_args("--stdout", "o", "--stderr", "e")])
        captured = capsys.readouterr()
        assert code == 0
        assert captured.out == "o\n"
        assert "e\n" in captured.err

    @pytest.mark.timeout(10)
    def test_binary_mode(self, capsysbinary):
        assert main(["--mode", "binary", *fake_args("--bytes", "32", "--seed", "3")]) == 0
        assert capsysbinary.readouterr().out == random.Random(3).randbytes(32)

    @pytest.mark.timeout(10)
    def test_env_and_cwd(self, capsys, tmp_path: Path):
        code = main(
            ["--env", "PROCLINE_CLI_VAR=42", "--cwd", str(tmp_path),
             *fake_args("--print-env", "PROCLINE_CLI_VAR", "--print-cwd")]
        )
        out = capsys.readouterr().out.splitlines()
        assert code == 0
        assert Path(out[0]).resolve() == tmp_path.resolve()
        assert out[1] == "PROCLINE_CLI_VAR=42"

    @pytest.mark.timeout(10)
    def test_timeout(self, capsys):
        assert main(["--timeout", "0.5", *fake_args("--sleep", "30")]) == EXIT_TIMEOUT
        assert "timed out" in capsys.readouterr().err

    def test_start_failure(self, capsys):
        assert main(["procline-no-such-binary --flag"]) == EXIT_START_FAILED
        assert "Can't start process" in capsys.readouterr().err

    @pytest.mark.timeout(10)
    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_shell_mode(self, capsys, monkeypatch):
        monkeypatch.setenv("PROCLINE_SHELL", "/bin/sh -c")
        from procline.config import reload_config

        reload_config()
        assert main(["--shell", "echo one; echo two"]) == 0
        assert capsys.readouterr().out == "one\ntwo\n"


class TestConfigureLogging:
    """Test logging setup."""

    def test_log_level_override(self):
        configure_logging(Config(), "DEBUG")
        assert logging.getLogger("procline").level == logging.DEBUG

        configure_logging(Config(), None)
        assert logging.getLogger("procline").level == logging.INFO

    def test_debug_uses_log_file(self, tmp_path: Path):
        log_file = tmp_path / "debug.log"
        root = logging.getLogger()
        before = list(root.handlers)

        configure_logging(Config(log_debug=True, log_file=str(log_file)))

        assert logging.getLogger("procline").level == logging.DEBUG
        for handler in root.handlers:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
