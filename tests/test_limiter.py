import asyncio

import pytest

from packfetch.exceptions import APINotFoundError, APIRateLimitError
from packfetch.services.limiter import SiteLimiter


class Flaky:
    """前 failures 次调用触发速率限制"""

    def __init__(self, failures, retry_after=None):
        self.failures = failures
        self.retry_after = retry_after
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise APIRateLimitError("限流", retry_after=self.retry_after)
        return "ok"


def test_retry_until_success(make_limiter, sleeps):
    limiter = make_limiter()
    operation = Flaky(2, retry_after=3)

    assert asyncio.run(limiter.retry(operation)) == "ok"
    assert operation.calls == 3
    # 第一次取站点给出的 3 秒，第二次退避下限 2 秒小于 3 秒
    assert sleeps.delays == [3.0, 3.0]


def test_backoff_floor_grows():
    limiter = SiteLimiter("modrinth", retry_delay=1.0)
    assert limiter.backoff_for(0, None) == 1.0
    assert limiter.backoff_for(3, None) == 8.0
    assert limiter.backoff_for(3, 2) == 8.0
    assert limiter.backoff_for(0, 10) == 10.0


def test_retry_gives_up(make_limiter, sleeps):
    limiter = make_limiter(max_retries=2)
    operation = Flaky(10)

    with pytest.raises(APIRateLimitError):
        asyncio.run(limiter.retry(operation))
    assert operation.calls == 3
    assert sleeps.delays == [1.0, 2.0]


def test_other_errors_are_not_retried(make_limiter, sleeps):
    limiter = make_limiter()
    calls = []

    async def missing():
        calls.append(1)
        raise APINotFoundError("不存在")

    with pytest.raises(APINotFoundError):
        asyncio.run(limiter.retry(missing))
    assert len(calls) == 1
    assert sleeps.delays == []


def test_slot_bounds_concurrency():
    async def scenario():
        limiter = SiteLimiter("curseforge", max_concurrent=3)

        async def work():
            async with limiter.slot():
                await asyncio.sleep(0.01)

        await asyncio.gather(*(work() for _ in range(12)))
        return limiter

    limiter = asyncio.run(scenario())
    assert limiter.peak_in_flight == 3


def test_slot_released_on_error():
    async def scenario():
        limiter = SiteLimiter("curseforge", max_concurrent=1)

        async def boom():
            async with limiter.slot():
                raise APINotFoundError("不存在")

        for _ in range(3):
            with pytest.raises(APINotFoundError):
                await boom()
        # 名额被释放后仍然可以获取
        return await asyncio.wait_for(limiter.run(Flaky(0)), timeout=1)

    assert asyncio.run(scenario()) == "ok"


def test_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        SiteLimiter("modrinth", max_concurrent=0)
