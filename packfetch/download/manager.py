"""
下载管理器

按侧别过滤已校验的模组，命中本地缓存时跳过下载，否则流式写入目标目录。
"""

import asyncio
import os
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import aiofiles
from loguru import logger

from packfetch.api.base import ModSite
from packfetch.download.verifier import FileVerifier, HashCheck
from packfetch.exceptions import (
    DownloadChecksumError,
    DownloadError,
    DownloadFileError,
    ModsDownloadError,
    PackFetchError,
)
from packfetch.models import KnownEnvRequirements, Side, VerifiedMod, VerifiedPack
from packfetch.services.limiter import SiteLimiter

EnvPredicate = Callable[[KnownEnvRequirements], bool]


def side_predicate(side: Side, include_optional: bool = True) -> EnvPredicate:
    """生成按侧别筛选模组的谓词"""

    def predicate(env: KnownEnvRequirements) -> bool:
        return env.for_side(side).is_needed(include_optional)

    return predicate


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        sites: Dict[str, ModSite],
        limiters: Dict[str, SiteLimiter],
        verifier: Optional[FileVerifier] = None,
    ):
        self.sites = sites
        self.limiters = limiters
        self.verifier = verifier or FileVerifier()
        self.stats = DownloadStats()
        self._failed_downloads: List[str] = []

    async def fetch(
        self, site: ModSite, limiter: SiteLimiter, mod: VerifiedMod, dest_dir: str
    ) -> str:
        """
        获取单个模组文件

        本地已有同名文件且哈希匹配时直接返回，不发起任何网络请求。

        Returns:
            目标文件路径
        """
        info = mod.info
        file_path = os.path.join(dest_dir, info.filename)

        if await self.verifier.is_cached(file_path, info.hashes):
            self.stats.skipped += 1
            logger.info(f"[跳过] [{site.name}] '{info.filename}' 已存在且校验通过")
            return file_path

        logger.info(f"[开始] [{site.name}] 下载: {info.filename}")
        os.makedirs(dest_dir, exist_ok=True)

        async with limiter.slot():
            written = await limiter.retry(
                lambda: self._write_stream(site, mod, file_path)
            )

        # 下载后再校验一次
        if await self.verifier.check_file(file_path, info.hashes) is HashCheck.MISMATCH:
            self._remove_quietly(file_path)
            raise DownloadChecksumError(
                f"哈希校验失败: {info.filename}",
                context={"file": info.filename},
            )

        self.stats.completed += 1
        # 只统计最终写入成功的字节，重试中途的不算
        self.stats.bytes_downloaded += written
        logger.success(
            f"[完成] [{site.name}] '{info.filename}' 下载完成 ({written / (1024 * 1024):.2f} MB)"
        )
        return file_path

    async def _write_stream(self, site: ModSite, mod: VerifiedMod, file_path: str) -> int:
        """把站点的字节流写入文件，覆盖旧内容"""
        filename = mod.info.filename
        total_size = mod.info.file_length
        downloaded = 0
        last_percent = 0.0
        try:
            async with aiofiles.open(file_path, "wb") as f:
                async for chunk in site.download(mod.source):
                    await f.write(chunk)
                    downloaded += len(chunk)

                    if total_size > 0:
                        percent = (downloaded / total_size) * 100
                        if percent - last_percent >= 5:
                            logger.debug(f"[进度] {filename}: {percent:.1f}%")
                            last_percent = percent
        except OSError as e:
            self._remove_quietly(file_path)
            raise DownloadFileError(
                f"写入文件失败: {filename}", context={"error": str(e)}
            )
        except (PackFetchError, asyncio.TimeoutError):
            self._remove_quietly(file_path)
            raise
        return downloaded

    @staticmethod
    def _remove_quietly(file_path: str):
        """清理不完整的文件"""
        if os.path.exists(file_path):
            try:
                os.remove(file_path)
            except OSError as e:
                logger.debug(f"清理 {file_path} 失败: {e}")

    async def download_mods(
        self,
        pack: VerifiedPack,
        dest_dir: str,
        predicate: EnvPredicate,
    ) -> Dict[str, str]:
        """
        下载所有满足谓词的模组

        Args:
            pack: 校验结果
            dest_dir: 目标目录
            predicate: 根据调和后的环境需求决定是否下载

        Returns:
            配置键 -> 文件路径

        Raises:
            ModsDownloadError: 有模组下载失败，包含全部失败项
        """
        selected: List[Tuple[str, str, VerifiedMod]] = []
        for site_name, mods in pack.by_site().items():
            for cfg_id in sorted(mods):
                mod = mods[cfg_id]
                if not predicate(mod.env_requirements):
                    logger.debug(f"[过滤] [{site_name}] {cfg_id} 不属于当前侧，跳过")
                    continue
                selected.append((site_name, cfg_id, mod))

        self.stats.total += len(selected)
        logger.info(f"[启动] 共 {len(selected)} 个模组需要获取")

        # 同名文件会写入同一路径，全部按冲突处理
        by_filename: Dict[str, List[str]] = defaultdict(list)
        for _, cfg_id, mod in selected:
            by_filename[mod.info.filename].append(cfg_id)

        errors: List[Tuple[str, BaseException]] = []
        jobs = []
        for site_name, cfg_id, mod in selected:
            owners = by_filename[mod.info.filename]
            if len(owners) > 1:
                errors.append(
                    (
                        cfg_id,
                        DownloadFileError(
                            f"文件名 {mod.info.filename} 与其他模组冲突: {sorted(owners)}",
                            context={"file": mod.info.filename, "mods": sorted(owners)},
                        ),
                    )
                )
                continue
            site = self.sites[site_name]
            jobs.append(
                (cfg_id, self.fetch(site, self.limiters[site_name], mod, dest_dir))
            )

        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)

        paths: Dict[str, str] = {}
        failures: Dict[str, Exception] = {}
        outcomes = [(cfg_id, result) for (cfg_id, _), result in zip(jobs, results)]
        for cfg_id, result in errors + outcomes:
            if isinstance(result, str):
                paths[cfg_id] = result
                continue
            if not isinstance(result, Exception):
                raise result
            if not isinstance(result, PackFetchError):
                result = DownloadError(f"下载失败: {cfg_id}", context={"error": str(result)})
            self.stats.failed += 1
            self._failed_downloads.append(cfg_id)
            failures[cfg_id] = result
            logger.error(f"[错误] 模组 {cfg_id} 下载失败: {result}")

        if failures:
            raise ModsDownloadError(failures)

        logger.success(
            f"下载完成: {self.stats.completed} 成功, {self.stats.skipped} 跳过"
        )
        return paths

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats

    def get_failed(self) -> List[str]:
        """获取失败的下载列表"""
        return self._failed_downloads.copy()
