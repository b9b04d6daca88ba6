from __future__ import annotations

import asyncio

import httpx
import pytest


class _Recorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)


def test_retry_succeeds_on_third_attempt_after_retryable_failures():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    calls: list[int] = []
    rec = _Recorder()

    async def op() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("network unreachable")
        return "ok"

    result = asyncio.run(retry_with_backoff(op, max_retries=3, sleep=rec.sleep))
    assert result == "ok"
    assert len(calls) == 3
    assert rec.delays == [1.0, 2.0]


def test_retry_raises_after_max_retries_plus_one_attempts():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    calls: list[int] = []
    rec = _Recorder()

    async def op() -> str:
        calls.append(1)
        raise TimeoutError("read timeout")

    with pytest.raises(TimeoutError):
        asyncio.run(retry_with_backoff(op, max_retries=3, sleep=rec.sleep))
    assert len(calls) == 4
    assert len(rec.delays) == 3


def test_retry_delay_is_capped_and_monotonic():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    rec = _Recorder()

    async def op() -> None:
        raise ConnectionError("ECONNRESET")

    with pytest.raises(ConnectionError):
        asyncio.run(
            retry_with_backoff(
                op,
                max_retries=5,
                initial_delay=1.0,
                max_delay=5.0,
                backoff_multiplier=2.0,
                sleep=rec.sleep,
            )
        )
    assert rec.delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_client_error_is_never_retried():
    from receipt_verifier.modules.verification.models import ReceiptClientError
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    calls: list[int] = []
    rec = _Recorder()

    async def op() -> None:
        calls.append(1)
        raise ReceiptClientError("network says not found (timeout)", status_code=404)

    with pytest.raises(ReceiptClientError):
        asyncio.run(retry_with_backoff(op, max_retries=5, sleep=rec.sleep))
    assert len(calls) == 1
    assert rec.delays == []


def test_httpx_4xx_status_error_is_not_retried():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    calls: list[int] = []
    request = httpx.Request("GET", "https://bank.example/receipt")
    response = httpx.Response(403, request=request)

    async def op() -> None:
        calls.append(1)
        raise httpx.HTTPStatusError("network forbidden", request=request, response=response)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(retry_with_backoff(op, max_retries=3, sleep=_Recorder().sleep))
    assert len(calls) == 1


def test_non_retryable_error_propagates_immediately():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    calls: list[int] = []

    async def op() -> None:
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        asyncio.run(retry_with_backoff(op, max_retries=3, sleep=_Recorder().sleep))
    assert len(calls) == 1


def test_retryable_signature_matches_error_code_and_class_name():
    from receipt_verifier.modules.verification.retry import matches_retryable

    class _CodedError(Exception):
        code = "EAI_AGAIN"

    assert matches_retryable(_CodedError("lookup failed"), ["eai_again"])
    assert matches_retryable(httpx.ConnectTimeout(""), ["timeout"])
    assert not matches_retryable(KeyError("payer"), ["timeout", "network"])


def test_on_retry_observer_receives_attempt_number_and_error():
    from receipt_verifier.modules.verification.retry import retry_with_backoff

    seen: list[tuple[int, str]] = []
    calls: list[int] = []

    async def op() -> str:
        calls.append(1)
        if len(calls) == 1:
            raise ConnectionError("socket hang up")
        return "done"

    result = asyncio.run(
        retry_with_backoff(
            op,
            on_retry=lambda attempt, exc: seen.append((attempt, str(exc))),
            sleep=_Recorder().sleep,
        )
    )
    assert result == "done"
    assert seen == [(1, "socket hang up")]


def test_retry_with_condition_uses_custom_predicate():
    from receipt_verifier.modules.verification.retry import retry_with_condition

    calls: list[int] = []
    attempts_seen: list[int] = []

    async def op() -> None:
        calls.append(1)
        raise KeyError("missing")

    def should_retry(exc: BaseException, attempt: int) -> bool:
        attempts_seen.append(attempt)
        return attempt < 1

    with pytest.raises(KeyError):
        asyncio.run(
            retry_with_condition(op, should_retry, max_retries=5, sleep=_Recorder().sleep)
        )
    assert len(calls) == 2
    assert attempts_seen == [0, 1]
