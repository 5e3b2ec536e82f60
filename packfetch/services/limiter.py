"""
站点并发限制

每个站点一个限制器：限制同时进行的网络操作数量，并在触发速率限制时
按站点给出的等待时间重试。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from packfetch.exceptions import APIRateLimitError

T = TypeVar("T")


class SiteLimiter:
    """单个站点的并发限制器"""

    def __init__(
        self,
        name: str,
        max_concurrent: int = 5,
        max_retries: int = 5,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            name: 站点名称，用于日志
            max_concurrent: 同时进行的操作上限
            max_retries: 速率限制的最大重试次数
            retry_delay: 退避下限的基数（秒），每次重试翻倍
            sleep: 等待函数，测试时可替换
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent 必须大于 0")
        self.name = name
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight = 0
        self.peak_in_flight = 0

    @asynccontextmanager
    async def slot(self):
        """占用一个并发名额，退出时（包括异常）释放"""
        async with self._semaphore:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                yield
            finally:
                self._in_flight -= 1

    def backoff_for(self, attempt: int, retry_after: Optional[float]) -> float:
        """站点给出的等待时间与递增退避下限取较大者"""
        floor = self.retry_delay * (2**attempt)
        if retry_after is None:
            return floor
        return max(float(retry_after), floor)

    async def retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        执行操作，遇到速率限制时重试

        Args:
            operation: 每次调用都会发起一次新请求的无参协程工厂

        Raises:
            APIRateLimitError: 超过最大重试次数
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except APIRateLimitError as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"[{self.name}] 速率限制重试 {self.max_retries} 次后仍失败"
                    )
                    raise
                delay = self.backoff_for(attempt, e.retry_after)
                attempt += 1
                logger.warning(
                    f"[重试] [{self.name}] 触发速率限制 (第 {attempt} 次)，"
                    f"{delay:.1f}s 后重试..."
                )
                await self._sleep(delay)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """占用名额并带重试地执行单个操作"""
        async with self.slot():
            return await self.retry(operation)
