"""
模组站点抽象

每个模组站点实现一次：按项目/按版本查询元数据、解析文件、下载内容。
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Iterable, Optional

import aiohttp
from loguru import logger

from packfetch.exceptions import (
    APIError,
    APINotFoundError,
    APIRateLimitError,
    APIServerError,
    DownloadNetworkError,
)
from packfetch.models import ModFileInfo, ModId, ModInfo, ModLoader

CHUNK_SIZE = 8192


class ModSite(ABC):
    """模组站点基类"""

    # 站点名称，同时是配置中的分组名
    name: str = ""
    # 站点原生标识类型
    id_type: type = str
    # 是否支持仅凭版本 ID 查询元数据
    supports_version_lookup: bool = False

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self._session = session
        self._owned_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._default_headers(), timeout=self._timeout
            )
            self._owned_session = True
        return self._session

    def _default_headers(self) -> Dict[str, str]:
        return {"User-Agent": "packfetch"}

    def _headers(self) -> Dict[str, str]:
        """每次请求附加的请求头"""
        return {}

    @staticmethod
    def _retry_after(response: aiohttp.ClientResponse) -> Optional[float]:
        """读取站点给出的等待秒数"""
        for header in ("Retry-After", "X-Ratelimit-Reset"):
            value = response.headers.get(header)
            if value is None:
                continue
            try:
                return float(value)
            except ValueError:
                continue
        return None

    def _raise_for_status(self, response: aiohttp.ClientResponse):
        """把非 200 响应转换为对应的 API 异常"""
        if response.status == 200:
            return
        if response.status == 404:
            raise APINotFoundError(f"[{self.name}] 资源不存在", response=response)
        if response.status == 429:
            raise APIRateLimitError(
                f"[{self.name}] 触发速率限制",
                retry_after=self._retry_after(response),
                response=response,
            )
        if response.status >= 500:
            raise APIServerError(
                f"[{self.name}] 服务器错误 (状态码: {response.status})",
                response=response,
            )
        raise APIError(
            f"[{self.name}] API 请求失败 (状态码: {response.status})",
            response=response,
        )

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        """发送 GET 请求并返回 JSON"""
        logger.trace(f"[{self.name}] GET {url} {params or ''}")
        try:
            async with self.session.get(
                url, params=params, headers=self._headers()
            ) as response:
                self._raise_for_status(response)
                return await response.json()
        except aiohttp.ClientError as e:
            raise APIError(f"[{self.name}] 网络请求失败: {e}", context={"url": url})

    async def _stream(self, url: str) -> AsyncIterator[bytes]:
        """流式读取文件内容"""
        try:
            async with self.session.get(url) as response:
                self._raise_for_status(response)
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    yield chunk
        except aiohttp.ClientError as e:
            raise DownloadNetworkError(f"[{self.name}] 下载失败: {e}", context={"url": url})

    @abstractmethod
    async def load_metadata(self, project_id: Any) -> ModInfo:
        """
        通过项目 ID 获取模组信息。
        """

    async def load_metadata_by_version(self, version_id: Any) -> Optional[ModInfo]:
        """
        通过版本 ID 获取模组信息。

        Returns:
            站点不支持按版本查询时返回 None
        """
        return None

    @abstractmethod
    async def load_file(self, mod_id: ModId) -> ModFileInfo:
        """
        解析具体的模组文件，project_info 通过 load_metadata 填充。
        """

    @abstractmethod
    def download(self, mod_id: ModId) -> AsyncIterator[bytes]:
        """
        以字节块的形式下载模组文件。
        """

    @abstractmethod
    async def get_latest_version(
        self, project_id: Any, minecraft_version: str, loader: ModLoader
    ) -> Optional[Any]:
        """
        查找匹配 Minecraft 版本与加载器的最新版本 ID。
        """

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()


def matches_loader(declared: Iterable[str], loader: ModLoader) -> bool:
    """
    文件声明的加载器是否包含目标加载器。

    未声明任何加载器的文件视为不匹配。
    """
    names = {str(name).lower() for name in declared}
    return loader.value in names
