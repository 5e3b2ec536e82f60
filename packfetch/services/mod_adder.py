"""
添加模组服务

为整合包查找项目的最新兼容版本，新增或更新配置中的模组条目。
"""

import re
from typing import Any, Dict, Iterable, Tuple

from loguru import logger

from packfetch.api.base import ModSite
from packfetch.models import EnvRequirement, PackConfig
from packfetch.services.limiter import SiteLimiter


def slugify(name: str) -> str:
    """
    由模组名称生成配置键

    去掉撇号，非字母数字替换为下划线并合并，去除首尾下划线后转小写。
    """
    key = name.replace("'", "")
    key = re.sub(r"[^0-9A-Za-z]", "_", key)
    key = re.sub(r"_+", "_", key)
    return key.strip("_").lower()


class ModAdder:
    """向整合包配置添加模组"""

    def __init__(self, pack: PackConfig, raw_config: Dict[str, Any]):
        """
        Args:
            pack: 已解析的整合包配置
            raw_config: 原始配置字典，修改直接写入其中
        """
        self.pack = pack
        self.raw_config = raw_config

    def _site_table(self, site_name: str) -> Dict[str, Any]:
        mods = self.raw_config.setdefault("mods", {})
        return mods.setdefault(site_name, {})

    def _key_taken(self, key: str) -> bool:
        """配置键在任一站点下已存在"""
        mods = self.raw_config.get("mods") or {}
        return any(key in (table or {}) for table in mods.values())

    async def add(
        self, site: ModSite, limiter: SiteLimiter, project_ids: Iterable[Any]
    ) -> bool:
        """
        添加或更新模组

        Returns:
            配置是否发生变化
        """
        existing: Dict[Any, Tuple[str, Any]] = {
            m.source.project_id: (key, m.source.version_id)
            for key, m in self.pack.mods.for_site(site.name).items()
        }
        table = self._site_table(site.name)
        changed = False

        for project_id in project_ids:
            logger.info(f"[{site.name}] 正在加载项目 {project_id} 的元数据...")
            latest = await limiter.run(
                lambda: site.get_latest_version(
                    project_id,
                    self.pack.minecraft_version,
                    self.pack.mod_loader.id,
                )
            )
            if latest is None:
                logger.warning(f"[{site.name}] 项目 {project_id} 没有可用的版本")
                continue

            if project_id in existing:
                key, version_id = existing[project_id]
                if version_id == latest:
                    logger.info(f"模组 {key} 已在整合包中且版本相同")
                    continue
                logger.info(f"模组 {key} 已在整合包中，版本不同，将更新")
                table[key]["version_id"] = latest
                changed = True
                continue

            info = None
            if site.supports_version_lookup:
                info = await limiter.run(lambda: site.load_metadata_by_version(latest))
            if info is None:
                info = await limiter.run(lambda: site.load_metadata(project_id))

            key = slugify(info.name)
            if not key or self._key_taken(key):
                logger.warning(f"不会覆盖已存在的模组键 {key!r}")
                continue

            logger.info(f"正在将模组 {key} 加入整合包")
            entry: Dict[str, Any] = {"project_id": project_id, "version_id": latest}
            for side, requirement in (
                ("client", info.side_info.client),
                ("server", info.side_info.server),
            ):
                if requirement is not EnvRequirement.UNKNOWN:
                    entry[side] = requirement.value
            table[key] = entry
            changed = True

        return changed
