"""Error type tests."""

from __future__ import annotations

import pickle

import pytest

from procline.errors import ProcessError, ProcessExecutionError, ProcessStartError


class TestProcessStartError:
    """Test ProcessStartError."""

    def test_message(self):
        error = ProcessStartError("nosuchtool", "--flag value")
        assert str(error) == "Can't start process. FileName:nosuchtool, Arguments:--flag value"
        assert error.file_name == "nosuchtool"
        assert error.arguments == "--flag value"

    def test_is_process_error(self):
        assert isinstance(ProcessStartError("x"), ProcessError)


class TestProcessExecutionError:
    """Test ProcessExecutionError."""

    def test_message_without_output(self):
        error = ProcessExecutionError(3)
        assert str(error) == "Process returns error, ExitCode:3"
        assert error.error_output == ()

    def test_message_with_output(self):
        error = ProcessExecutionError(1, ["first", "second"])
        assert str(error) == "Process returns error, ExitCode:1\nfirst\nsecond"
        assert error.exit_code == 1
        assert error.error_output == ("first", "second")

    def test_fields_read_only(self):
        error = ProcessExecutionError(1)
        with pytest.raises(AttributeError):
            error.exit_code = 0  # type: ignore[misc]

    def test_pickle_round_trip(self):
        error = pickle.loads(pickle.dumps(ProcessExecutionError(4, ["e"])))
        assert error.exit_code == 4
        assert error.error_output == ("e",)
