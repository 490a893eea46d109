# ruff: noqa: ANN201, ANN001
import pytest

from obsync.exceptions import HttpError, NetworkError, OfflineError
from obsync.utils.retry import is_retriable, retry_async


class Flaky:
    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def test_is_retriable():
    assert is_retriable(NetworkError("network.request_failed", url="u", error="reset"))
    assert is_retriable(HttpError(503, "u"))
    assert is_retriable(HttpError(429, "u"))
    assert not is_retriable(HttpError(404, "u"))
    assert not is_retriable(OfflineError())
    assert not is_retriable(ValueError("boom"))


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures():
    op = Flaky([HttpError(503, "u"), HttpError(502, "u")])

    assert await retry_async(op, attempts=3, delay=0) == "ok"
    assert op.calls == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_attempts():
    op = Flaky([HttpError(503, "u")] * 5)

    with pytest.raises(HttpError):
        await retry_async(op, attempts=2, delay=0)
    assert op.calls == 2


@pytest.mark.asyncio
async def test_retry_does_not_retry_permanent_errors():
    op = Flaky([HttpError(404, "u")])

    with pytest.raises(HttpError):
        await retry_async(op, attempts=3, delay=0)
    assert op.calls == 1


@pytest.mark.asyncio
async def test_retry_always_makes_one_attempt():
    op = Flaky([])

    assert await retry_async(op, attempts=0, delay=0) == "ok"
    assert op.calls == 1


@pytest.mark.asyncio
async def test_retry_sleeps_between_attempts(monkeypatch: pytest.MonkeyPatch):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr("obsync.utils.retry.asyncio.sleep", fake_sleep)
    op = Flaky([HttpError(500, "u"), HttpError(500, "u")])

    await retry_async(op, attempts=3, delay=1.5)
    assert sleeps == [1.5, 1.5]
