"""
主协调器

创建站点与各自的并发限制器，编排校验、下载与添加模组流程。
"""

import os
from typing import Any, Dict, Iterable, Optional

from loguru import logger

from packfetch.api import CurseForgeSite, ModrinthSite, ModSite
from packfetch.download import DownloadManager
from packfetch.download.manager import EnvPredicate
from packfetch.models import PackConfig, VerifiedPack
from packfetch.services import ModAdder, SiteLimiter, verify_mods
from packfetch.settings import Settings

MODS_DIR = "mods"


class PackFetchOrchestrator:
    """PackFetch 主协调器"""

    def __init__(
        self,
        config: PackConfig,
        settings: Optional[Settings] = None,
        sites: Optional[Dict[str, ModSite]] = None,
    ):
        """
        Args:
            config: 整合包配置
            settings: 全局设置
            sites: 站点名 -> 站点，缺省时按设置创建 CurseForge 与 Modrinth
        """
        self.config = config
        self.settings = settings or Settings()
        self.sites: Dict[str, ModSite] = sites or {
            CurseForgeSite.name: CurseForgeSite(
                self.settings.curseforge_api_key,
                timeout=self.settings.request_timeout,
            ),
            ModrinthSite.name: ModrinthSite(timeout=self.settings.request_timeout),
        }
        self.limiters: Dict[str, SiteLimiter] = {
            name: SiteLimiter(
                name,
                max_concurrent=self.settings.max_concurrent,
                max_retries=self.settings.max_retries,
                retry_delay=self.settings.retry_delay,
            )
            for name in self.sites
        }
        self.download_manager = DownloadManager(self.sites, self.limiters)

    async def verify(self) -> VerifiedPack:
        """校验整合包中的所有模组"""
        logger.info(
            f"开始校验整合包 {self.config.name} {self.config.version} "
            f"(Minecraft {self.config.minecraft_version}, "
            f"{self.config.mod_loader.id.value} {self.config.mod_loader.version})"
        )
        return await verify_mods(
            self.config.mods,
            self.sites,
            self.limiters,
            self.config.minecraft_version,
        )

    async def download(
        self,
        output_dir: str,
        predicate: EnvPredicate,
        pack: Optional[VerifiedPack] = None,
    ) -> Dict[str, str]:
        """
        把满足谓词的模组下载到 <output_dir>/mods

        Args:
            output_dir: 输出目录
            predicate: 按调和后的环境需求筛选
            pack: 已有的校验结果，缺省时先校验
        """
        if pack is None:
            pack = await self.verify()
        mods_dir = os.path.join(output_dir, MODS_DIR)
        os.makedirs(mods_dir, exist_ok=True)
        logger.info(f"准备下载目录: {mods_dir}")
        return await self.download_manager.download_mods(pack, mods_dir, predicate)

    async def add_mods(
        self, site_name: str, project_ids: Iterable[Any], raw_config: Dict[str, Any]
    ) -> bool:
        """
        添加或更新模组，修改写入 raw_config

        Returns:
            配置是否发生变化
        """
        site = self.sites[site_name]
        adder = ModAdder(self.config, raw_config)
        return await adder.add(site, self.limiters[site_name], project_ids)

    def get_stats(self) -> dict:
        """获取统计信息"""
        stats = self.download_manager.get_stats()
        return {
            "downloaded": stats.completed,
            "skipped": stats.skipped,
            "bytes": stats.bytes_downloaded,
            "failed": self.download_manager.get_failed(),
        }

    async def close(self):
        for site in self.sites.values():
            await site.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
