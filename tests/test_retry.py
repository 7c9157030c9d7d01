# tests/test_retry.py
from __future__ import annotations

import pytest

from churn_guard.errors import CRMError, ErrorKind
from churn_guard.retry import RetryPolicy


class Flaky:
    """Raises the scripted errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.attempts = []

    def __call__(self, attempt):
        self.attempts.append(attempt)
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def server_error():
    return CRMError.from_status("unavailable", 503)


def test_backoff_doubles_from_half_second():
    policy = RetryPolicy()
    assert [policy.backoff(a) for a in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_two_503s_then_success(retry, sleeps):
    op = Flaky(server_error(), server_error())
    assert retry.run(op) == "ok"
    assert op.attempts == [1, 2, 3]
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_three_attempts(retry, sleeps):
    op = Flaky(server_error(), server_error(), server_error(), server_error())
    with pytest.raises(CRMError) as exc:
        retry.run(op)
    assert exc.value.status == 503
    assert op.attempts == [1, 2, 3]
    assert sleeps == [0.5, 1.0]


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_client_errors_are_not_retried(retry, sleeps, status):
    op = Flaky(CRMError.from_status("nope", status))
    with pytest.raises(CRMError) as exc:
        retry.run(op)
    assert exc.value.kind is ErrorKind.CLIENT_ERROR
    assert op.attempts == [1]
    assert sleeps == []


def test_rate_limit_and_network_errors_are_retried(retry, sleeps):
    op = Flaky(
        CRMError.from_status("slow down", 429),
        CRMError("connection reset", ErrorKind.NETWORK_ERROR),
    )
    assert retry.run(op) == "ok"
    assert sleeps == [0.5, 1.0]


def test_configuration_error_is_not_retried(retry, sleeps):
    op = Flaky(CRMError("no token", ErrorKind.CONFIGURATION))
    with pytest.raises(CRMError):
        retry.run(op)
    assert op.attempts == [1]
    assert sleeps == []


def test_unclassified_exceptions_propagate_immediately(retry, sleeps):
    op = Flaky(KeyError("id"))
    with pytest.raises(KeyError):
        retry.run(op)
    assert sleeps == []


def test_custom_predicate_and_attempts(sleeps):
    policy = RetryPolicy(max_attempts=2, base_delay=0.1, is_retryable=lambda e: True, sleep=sleeps.append)
    op = Flaky(ValueError("a"), ValueError("b"))
    with pytest.raises(ValueError):
        policy.run(op)
    assert op.attempts == [1, 2]
    assert sleeps == [0.1]


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
