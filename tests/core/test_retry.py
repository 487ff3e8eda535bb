"""Tests for chatsync/core/retry.py"""

import httpx
import pytest
from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st

from chatsync.core.retry import DEFAULT_ATTEMPTS, _calculate_delay, with_retry


@hypothesis_settings(max_examples=50)
@given(
    attempt=st.integers(min_value=0, max_value=10),
    base_delay=st.floats(min_value=0.01, max_value=1.0),
)
def test_delay_doubles_per_attempt(attempt, base_delay):
    assert abs(_calculate_delay(attempt, base_delay) - base_delay * (2**attempt)) < 1e-9


class _Flaky:
    """Raises the queued exceptions in order, then returns "ok"."""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.mark.asyncio
async def test_transport_error_is_retried():
    fn = _Flaky(httpx.ConnectError("reset"))
    result = await with_retry(fn, exceptions=(httpx.RequestError,), base_delay=0.001)
    assert result == "ok"
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_gives_up_with_last_error():
    fn = _Flaky(*(httpx.ConnectError(f"reset {n}") for n in range(DEFAULT_ATTEMPTS)))
    with pytest.raises(httpx.ConnectError, match=f"reset {DEFAULT_ATTEMPTS - 1}"):
        await with_retry(fn, exceptions=(httpx.RequestError,), base_delay=0.001)
    assert fn.calls == DEFAULT_ATTEMPTS


@pytest.mark.asyncio
async def test_unlisted_errors_are_not_retried():
    fn = _Flaky(KeyError("missing"))
    with pytest.raises(KeyError):
        await with_retry(fn, attempts=3, exceptions=(httpx.RequestError,), base_delay=0.001)
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps():
    fn = _Flaky(httpx.ReadTimeout("slow"))
    with pytest.raises(httpx.ReadTimeout):
        await with_retry(fn, attempts=1, exceptions=(httpx.RequestError,), base_delay=60)
    assert fn.calls == 1
