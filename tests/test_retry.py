from __future__ import annotations

import asyncio

from app.errors import UpstreamStatusError, is_retryable_status
from app.utils.retry import backoff_delay, with_retry


def test_backoff_delay_doubles_from_two_seconds():
    assert [backoff_delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert backoff_delay(2, initial_delay=0.5) == 2.0


def test_retryable_statuses():
    assert is_retryable_status(429)
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert not is_retryable_status(400)
    assert not is_retryable_status(404)
    assert UpstreamStatusError(502).retryable
    assert not UpstreamStatusError(401).retryable


def test_with_retry_stops_at_first_non_retryable_result():
    results = iter(["retry", "retry", "done", "never"])
    delays: list[float] = []

    async def attempt():
        return next(results)

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    result = asyncio.run(
        with_retry(attempt, is_retryable=lambda r: r == "retry", max_retries=5, sleep=fake_sleep)
    )

    assert result == "done"
    assert delays == [2.0, 4.0]


def test_with_retry_returns_last_result_when_budget_is_spent():
    attempts: list[int] = []
    delays: list[float] = []

    async def attempt():
        attempts.append(1)
        return "retry"

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    result = asyncio.run(
        with_retry(attempt, is_retryable=lambda r: True, max_retries=3, sleep=fake_sleep)
    )

    assert result == "retry"
    assert len(attempts) == 3
    assert delays == [2.0, 4.0]


def test_with_retry_single_attempt_budget_never_sleeps():
    delays: list[float] = []

    async def attempt():
        return "retry"

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    asyncio.run(with_retry(attempt, is_retryable=lambda r: True, max_retries=1, sleep=fake_sleep))

    assert delays == []
