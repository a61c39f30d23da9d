"""Config module tests.

Covers PROCLINE_* environment parsing and the process-wide exit-code
whitelist.
"""

from __future__ import annotations

import os
import threading
from unittest import mock

import pytest

from procline.config import (
    Config,
    get_acceptable_exit_codes,
    get_config,
    load_config,
    reload_config,
    set_acceptable_exit_codes,
)


class TestParseExitCodes:
    """Test PROCLINE_ACCEPTABLE_EXIT_CODES parsing."""

    def test_default_is_zero(self):
        config = load_config()
        assert config.acceptable_exit_codes == frozenset({0})

    def test_single_code(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ACCEPTABLE_EXIT_CODES": "2"}):
            assert load_config().acceptable_exit_codes == frozenset({2})

    def test_multiple_codes_with_whitespace(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ACCEPTABLE_EXIT_CODES": " 0 , 1,2 "}):
            assert load_config().acceptable_exit_codes == frozenset({0, 1, 2})

    def test_invalid_entries_ignored(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ACCEPTABLE_EXIT_CODES": "0,abc,3"}):
            assert load_config().acceptable_exit_codes == frozenset({0, 3})

    def test_all_invalid_falls_back(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ACCEPTABLE_EXIT_CODES": "x,y"}):
            assert load_config().acceptable_exit_codes == frozenset({0})


class TestParseEncoding:
    """Test PROCLINE_ENCODING parsing."""

    def test_default(self):
        assert load_config().encoding == "utf-8"

    def test_normalized_name(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ENCODING": "Latin-1"}):
            assert load_config().encoding == "iso8859-1"

    def test_unknown_falls_back(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ENCODING": "no-such-codec"}):
            assert load_config().encoding == "utf-8"


class TestParseFlags:
    """Test boolean and string variables."""

    def test_verbose_default_on(self):
        assert load_config().verbose is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "OFF"])
    def test_verbose_off(self, value):
        with mock.patch.dict(os.environ, {"PROCLINE_VERBOSE": value}):
            assert load_config().verbose is False

    def test_shell(self):
        with mock.patch.dict(os.environ, {"PROCLINE_SHELL": " /bin/zsh -c "}):
            assert load_config().shell == "/bin/zsh -c"

    def test_shell_blank_is_none(self):
        with mock.patch.dict(os.environ, {"PROCLINE_SHELL": "   "}):
            assert load_config().shell is None

    def test_log_debug_sets_log_file(self):
        with mock.patch.dict(os.environ, {"PROCLINE_LOG_DEBUG": "1"}):
            config = load_config()
            assert config.log_debug is True
            assert config.log_file is not None
            assert "procline_debug_" in config.log_file

    def test_log_file_unset_without_debug(self):
        config = load_config()
        assert config.log_debug is False
        assert config.log_file is None


class TestGlobalConfig:
    """Test the lazily loaded global config."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reload_reads_environment(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ENCODING": "ascii"}):
            assert reload_config().encoding == "ascii"
            assert get_config().encoding == "ascii"

    def test_repr(self):
        text = repr(Config(acceptable_exit_codes=frozenset({2, 0})))
        assert "acceptable_exit_codes=0,2" in text


class TestExitCodeWhitelist:
    """Test set_acceptable_exit_codes/get_acceptable_exit_codes."""

    def test_default_comes_from_config(self):
        with mock.patch.dict(os.environ, {"PROCLINE_ACCEPTABLE_EXIT_CODES": "0,5"}):
            reload_config()
            assert get_acceptable_exit_codes() == frozenset({0, 5})

    def test_set_replaces_and_returns_previous(self):
        previous = set_acceptable_exit_codes([0, 1])
        assert previous == frozenset({0})
        assert get_acceptable_exit_codes() == frozenset({0, 1})

        assert set_acceptable_exit_codes({3}) == frozenset({0, 1})
        assert get_acceptable_exit_codes() == frozenset({3})

    def test_reload_drops_override(self):
        set_acceptable_exit_codes([7])
        reload_config()
        assert get_acceptable_exit_codes() == frozenset({0})

    def test_concurrent_sets_leave_one_whole_set(self):
        candidates = [frozenset({i, i + 100}) for i in range(20)]

        def worker(codes):
            for _ in range(50):
                set_acceptable_exit_codes(codes)
                assert len(get_acceptable_exit_codes()) == 2

        threads = [threading.Thread(target=worker, args=(c,)) for c in candidates]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert get_acceptable_exit_codes() in candidates
