"""procline environment-variable configuration.

Environment variables:
    PROCLINE_ACCEPTABLE_EXIT_CODES: exit codes treated as success
        - comma separated integers, e.g. "0,2"
        - unset/empty/invalid = "0"

    PROCLINE_ENCODING: text encoding used to decode stdout/stderr lines
        - default "utf-8"

    PROCLINE_SHELL: shell prefix used by the zx scripting facade
        - e.g. "/bin/zsh -c"
        - unset = "cmd /c" on Windows, "<path to bash> -c" elsewhere

    PROCLINE_VERBOSE: echo command output lines in the zx facade
        - true/1/yes = on (default)
        - false/0/no = off

    PROCLINE_LOG_DEBUG: debug logging
        - true/1/yes = on (log to a temp file)
        - false/0/no = off (default, log to stderr)
"""

from __future__ import annotations

import codecs
import os
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "get_acceptable_exit_codes",
    "set_acceptable_exit_codes",
]

DEFAULT_ACCEPTABLE_EXIT_CODES = frozenset({0})
DEFAULT_ENCODING = "utf-8"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_exit_codes(value: str | None) -> frozenset[int]:
    """Parse a comma separated exit-code list.

    Args:
        value: Environment variable value, e.g. "0, 2"

    Returns:
        Set of exit codes; the default set when nothing valid is given
    """
    if not value or not value.strip():
        return DEFAULT_ACCEPTABLE_EXIT_CODES

    codes = set()
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            codes.add(int(item))
        except ValueError:
            continue

    return frozenset(codes) or DEFAULT_ACCEPTABLE_EXIT_CODES


def _parse_encoding(value: str | None) -> str:
    """Parse and validate an encoding name."""
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


@dataclass
class Config:
    """procline configuration.

    Attributes:
        acceptable_exit_codes: exit codes treated as success
        encoding: default decoding for output lines
        shell: shell prefix for the zx facade (None = platform default)
        verbose: echo output lines in the zx facade
        log_debug: debug logging to a temp file
        log_file: log file path (set when log_debug=True)
    """

    acceptable_exit_codes: frozenset[int] = field(
        default_factory=lambda: DEFAULT_ACCEPTABLE_EXIT_CODES
    )
    encoding: str = DEFAULT_ENCODING
    shell: str | None = None
    verbose: bool = True
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        codes = ",".join(str(c) for c in sorted(self.acceptable_exit_codes))
        return (
            f"Config(acceptable_exit_codes={codes}, "
            f"encoding={self.encoding}, "
            f"shell={self.shell}, "
            f"verbose={self.verbose}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "procline"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"procline_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("PROCLINE_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    shell = os.environ.get("PROCLINE_SHELL", "").strip() or None

    return Config(
        acceptable_exit_codes=_parse_exit_codes(
            os.environ.get("PROCLINE_ACCEPTABLE_EXIT_CODES")
        ),
        encoding=_parse_encoding(os.environ.get("PROCLINE_ENCODING")),
        shell=shell,
        verbose=_parse_bool(os.environ.get("PROCLINE_VERBOSE"), default=True),
        log_debug=log_debug,
        log_file=log_file,
    )


# Lazily loaded global config
_config: Config | None = None

# Process-wide whitelist override, set by set_acceptable_exit_codes()
_acceptable_exit_codes: frozenset[int] | None = None
_exit_codes_lock = threading.Lock()


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests).

    Also drops any whitelist set with set_acceptable_exit_codes().
    """
    global _config, _acceptable_exit_codes
    _config = load_config()
    with _exit_codes_lock:
        _acceptable_exit_codes = None
    return _config


def get_acceptable_exit_codes() -> frozenset[int]:
    """Return the process-wide set of exit codes treated as success."""
    with _exit_codes_lock:
        if _acceptable_exit_codes is not None:
            return _acceptable_exit_codes
    return get_config().acceptable_exit_codes


def set_acceptable_exit_codes(codes: Iterable[int]) -> frozenset[int]:
    """Replace the process-wide exit-code whitelist.

    The new set replaces the old one wholesale. Launches that finalize after
    this call see the new set; launches already finalized are unaffected.

    Args:
        codes: Exit codes to accept

    Returns:
        The previous whitelist, so callers can restore it
    """
    global _acceptable_exit_codes
    new_codes = frozenset(int(c) for c in codes)
    previous = get_acceptable_exit_codes()
    with _exit_codes_lock:
        _acceptable_exit_codes = new_codes
    return previous
