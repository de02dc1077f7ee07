"""Tests for call_with_retry."""

from unittest.mock import MagicMock, patch

import pytest

from app.core.retry import call_with_retry


class TransientError(Exception):
    pass


@patch("app.core.retry.time.sleep")
def test_returns_after_transient_failures(mock_sleep):
    func = MagicMock(side_effect=[TransientError(), TransientError(), "ok"])

    result = call_with_retry(func, max_attempts=3, backoff_seconds=0.5, retry_on=(TransientError,))

    assert result == "ok"
    assert func.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]


@patch("app.core.retry.time.sleep")
def test_raises_last_error_when_exhausted(mock_sleep):
    func = MagicMock(side_effect=TransientError("still down"))

    with pytest.raises(TransientError, match="still down"):
        call_with_retry(func, max_attempts=2, retry_on=(TransientError,))

    assert func.call_count == 2
    assert mock_sleep.call_count == 1


def test_other_errors_are_not_retried():
    func = MagicMock(side_effect=ValueError("bad input"))

    with pytest.raises(ValueError):
        call_with_retry(func, max_attempts=3, retry_on=(TransientError,))

    assert func.call_count == 1
