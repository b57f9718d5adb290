try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from patron_gate.utils.http import NO_RETRY, RetryConfig, send_with_retry

pytestmark = pytest.mark.anyio

FAST = RetryConfig(attempts=3, backoff_seconds=0)


class FlakySender:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self) -> httpx.Response:
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def test_returns_first_response() -> None:
    sender = FlakySender(httpx.Response(200))

    response = await send_with_retry(sender, retry_config=FAST)

    assert response.status_code == 200
    assert sender.calls == 1


async def test_retries_transport_errors_until_success() -> None:
    sender = FlakySender(httpx.ConnectError("down"), httpx.Response(204))

    response = await send_with_retry(sender, retry_config=FAST)

    assert response.status_code == 204
    assert sender.calls == 2


async def test_error_statuses_are_not_retried() -> None:
    sender = FlakySender(httpx.Response(503), httpx.Response(200))

    response = await send_with_retry(sender, retry_config=FAST)

    assert response.status_code == 503
    assert sender.calls == 1


async def test_reraises_after_last_attempt() -> None:
    sender = FlakySender(*(httpx.ReadTimeout("slow") for _ in range(3)))

    with pytest.raises(httpx.ReadTimeout):
        await send_with_retry(sender, retry_config=FAST)

    assert sender.calls == 3


async def test_no_retry_config_sends_once() -> None:
    sender = FlakySender(httpx.ConnectError("down"), httpx.Response(200))

    with pytest.raises(httpx.ConnectError):
        await send_with_retry(sender, retry_config=NO_RETRY)

    assert sender.calls == 1


def test_retry_config_requires_an_attempt() -> None:
    with pytest.raises(ValueError):
        RetryConfig(attempts=0)
