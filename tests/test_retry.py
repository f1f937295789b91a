import asyncio

import pytest

from ynabsync.exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    ErrorKind,
    NotFoundError,
    RateLimitExceeded,
    TransientError,
    UnknownError,
    ValidationError,
)
from ynabsync.models import Failure, RetryContext, Success
from ynabsync.retry import RetryPolicy


class ScriptedOperation:
    """Operation returning a fixed sequence of outcomes; the last repeats."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


def delays(mock_sleep):
    return [c.args[0] for c in mock_sleep.call_args_list]


def test_retry_context_delay():
    context = RetryContext(max_attempts=5, base_delay_ms=1000)
    assert context.delay_ms() == 1000
    context.attempt = 2
    assert context.delay_ms() == 2000
    context.attempt = 3
    assert context.delay_ms() == 4000


def test_invalid_max_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_invalid_max_attempts_override():
    op = ScriptedOperation(Success("never"))

    with pytest.raises(ValueError):
        await RetryPolicy().execute(op, max_attempts=0)
    assert op.calls == 0


@pytest.mark.asyncio
class TestRetryPolicy:
    async def test_success_first_attempt(self, mock_sleep):
        op = ScriptedOperation(Success("ok"))

        outcome = await RetryPolicy().execute(op)

        assert outcome.unwrap() == "ok"
        assert op.calls == 1
        mock_sleep.assert_not_called()

    async def test_transient_failures_exhaust_attempts(self, mock_sleep):
        errors = [TransientError(f"server error {i}", status_code=503) for i in range(3)]
        op = ScriptedOperation(*[Failure(e) for e in errors])

        outcome = await RetryPolicy().execute(op, max_attempts=3, base_delay_ms=1000)

        assert op.calls == 3
        assert delays(mock_sleep) == [1.0, 2.0]
        assert not outcome.ok
        assert outcome.error is errors[2]
        with pytest.raises(TransientError):
            outcome.unwrap()

    async def test_success_on_second_attempt(self, mock_sleep):
        op = ScriptedOperation(Failure(TransientError("timeout")), Success("ok"))

        outcome = await RetryPolicy().execute(op, max_attempts=3, base_delay_ms=1000)

        assert outcome.unwrap() == "ok"
        assert op.calls == 2
        assert delays(mock_sleep) == [1.0]

    async def test_auth_error_not_retried(self, mock_sleep):
        error = AuthError("Unauthorized", status_code=401)
        op = ScriptedOperation(Failure(error), Success("never"))

        outcome = await RetryPolicy().execute(op)

        assert op.calls == 1
        assert outcome.error is error
        mock_sleep.assert_not_called()

    @pytest.mark.parametrize(
        "error_cls", [AuthError, ValidationError, NotFoundError, ConflictError, UnknownError]
    )
    async def test_fatal_kinds_not_retried(self, error_cls, mock_sleep):
        op = ScriptedOperation(Failure(error_cls("nope")), Success("never"))

        outcome = await RetryPolicy().execute(op)

        assert op.calls == 1
        assert not outcome.ok
        assert not outcome.error.kind.retryable

    async def test_rate_limit_uses_larger_retry_after(self, mock_sleep):
        op = ScriptedOperation(
            Failure(RateLimitExceeded("slow down", status_code=429, retry_after_ms=5000)),
            Success("ok"),
        )

        outcome = await RetryPolicy().execute(op, base_delay_ms=1000)

        assert outcome.ok
        assert delays(mock_sleep) == [5.0]

    async def test_rate_limit_keeps_backoff_when_retry_after_smaller(self, mock_sleep):
        op = ScriptedOperation(
            Failure(RateLimitExceeded("slow down", retry_after_ms=100)),
            Success("ok"),
        )

        await RetryPolicy().execute(op, base_delay_ms=1000)

        assert delays(mock_sleep) == [1.0]

    async def test_backoff_capped_by_max_delay(self, mock_sleep):
        op = ScriptedOperation(Failure(TransientError("down")))
        policy = RetryPolicy(max_attempts=4, base_delay_ms=1000, max_delay_ms=2500)

        await policy.execute(op)

        assert delays(mock_sleep) == [1.0, 2.0, 2.5]

    async def test_each_execute_starts_fresh(self, mock_sleep):
        policy = RetryPolicy(max_attempts=2, base_delay_ms=1000)

        await policy.execute(ScriptedOperation(Failure(TransientError("down"))))
        await policy.execute(ScriptedOperation(Failure(TransientError("down"))))

        assert delays(mock_sleep) == [1.0, 1.0]

    async def test_retryability_follows_kind_not_message(self, mock_sleep):
        # A fatal error whose text mentions retrying is still fatal
        error = ApiError.from_kind(ErrorKind.VALIDATION, "timeout, please retry")
        op = ScriptedOperation(Failure(error))

        await RetryPolicy().execute(op)

        assert op.calls == 1


@pytest.mark.asyncio
async def test_backoff_sleep_is_cancellable():
    op = ScriptedOperation(Failure(TransientError("down")))
    policy = RetryPolicy(max_attempts=3, base_delay_ms=60_000)

    task = asyncio.ensure_future(policy.execute(op))
    await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert op.calls == 1
