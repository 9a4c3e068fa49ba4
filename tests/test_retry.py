"""Tests for the retry primitive."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from litestar_stepflow.engine.retry import (
    RetryPolicy,
    compute_delay_ms,
    default_retry_condition,
    error_status,
    retry_async,
)
from litestar_stepflow.exceptions import RetryExhaustedError
from tests.conftest import SleepRecorder


class StatusError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


class _Response:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class ResponseError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__("response error")
        self.response = _Response(status_code)


def flaky(*errors: Exception, result: Any = "ok"):
    """Operation failing with ``errors`` in turn before returning ``result``."""
    calls: list[int] = []

    async def operation() -> Any:
        calls.append(1)
        if len(calls) <= len(errors):
            raise errors[len(calls) - 1]
        return result

    operation.calls = calls  # type: ignore[attr-defined]
    return operation


@pytest.mark.unit
class TestRetryCondition:
    """Tests for default_retry_condition and error_status."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 599])
    def test_retries_rate_limits_and_server_errors(self, status: int) -> None:
        assert default_retry_condition(StatusError(status))

    @pytest.mark.parametrize("status", [400, 401, 404, 422])
    def test_does_not_retry_client_errors(self, status: int) -> None:
        assert not default_retry_condition(StatusError(status))

    def test_does_not_retry_errors_without_status(self) -> None:
        assert not default_retry_condition(ValueError("boom"))

    def test_reads_status_from_response(self) -> None:
        assert error_status(ResponseError(503)) == 503


@pytest.mark.unit
class TestComputeDelay:
    """Tests for compute_delay_ms."""

    def test_exponential_without_jitter(self) -> None:
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=30000, jitter_factor=0.1)

        delays = [compute_delay_ms(policy, attempt, rand=lambda: 0.0) for attempt in range(4)]

        assert delays == [1000, 2000, 4000, 8000]

    def test_capped_at_max_delay(self) -> None:
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=5000, jitter_factor=0.0)

        assert compute_delay_ms(policy, 10) == 5000

    def test_jitter_is_added_and_floored(self) -> None:
        policy = RetryPolicy(base_delay_ms=1000, jitter_factor=0.1)

        assert compute_delay_ms(policy, 0, rand=lambda: 0.555) == 1055


@pytest.mark.unit
class TestRetryAsync:
    """Tests for retry_async."""

    async def test_returns_first_success_without_sleeping(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky()

        assert await retry_async(operation, sleep=sleep_recorder) == "ok"
        assert sleep_recorder.delays == []

    async def test_retries_transient_errors(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky(StatusError(503), StatusError(429))
        policy = RetryPolicy(max_retries=3, base_delay_ms=100, jitter_factor=0.0)

        result = await retry_async(operation, policy, sleep=sleep_recorder)

        assert result == "ok"
        assert len(operation.calls) == 3
        assert sleep_recorder.delays == [0.1, 0.2]

    async def test_gives_up_after_max_retries(self, sleep_recorder: SleepRecorder) -> None:
        cause = StatusError(500)
        operation = flaky(cause, cause, cause, cause)
        policy = RetryPolicy(max_retries=2, base_delay_ms=10, jitter_factor=0.0)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(operation, policy, sleep=sleep_recorder)

        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is cause
        assert len(operation.calls) == 3

    async def test_non_retryable_error_fails_immediately(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky(StatusError(400))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(operation, sleep=sleep_recorder)

        assert exc_info.value.attempts == 1
        assert sleep_recorder.delays == []

    async def test_zero_retries_makes_a_single_attempt(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky(StatusError(503))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(operation, RetryPolicy(max_retries=0), sleep=sleep_recorder)

        assert exc_info.value.attempts == 1
        assert len(operation.calls) == 1
        assert sleep_recorder.delays == []

    async def test_jitter_comes_from_injected_source(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky(StatusError(502), StatusError(502))
        policy = RetryPolicy(base_delay_ms=1000, jitter_factor=0.1)

        await retry_async(operation, policy, sleep=sleep_recorder, rand=lambda: 0.5)

        assert sleep_recorder.delays == [1.05, 2.1]

    async def test_custom_condition(self, sleep_recorder: SleepRecorder) -> None:
        operation = flaky(ConnectionError("reset"))

        result = await retry_async(
            operation,
            RetryPolicy(jitter_factor=0.0),
            retry_on=lambda e: isinstance(e, ConnectionError),
            sleep=sleep_recorder,
        )

        assert result == "ok"
        assert sleep_recorder.delays == [1.0]

    async def test_logs_attempts(self, sleep_recorder: SleepRecorder, caplog: pytest.LogCaptureFixture) -> None:
        operation = flaky(StatusError(503))

        with caplog.at_level(logging.INFO, logger="litestar_stepflow.engine.retry"):
            await retry_async(operation, RetryPolicy(jitter_factor=0.0), sleep=sleep_recorder, request_id="req-1")

        messages = [record.getMessage() for record in caplog.records]
        assert "Retry attempt failed - retrying" in messages
        assert "Retry succeeded" in messages
        assert all(record.request_id == "req-1" for record in caplog.records)
