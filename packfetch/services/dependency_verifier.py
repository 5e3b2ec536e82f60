"""
依赖校验服务

对单个站点的模组列表并发校验：分发许可、Minecraft 版本以及依赖是否都已声明。
一个模组失败不会影响其他模组，所有结果汇总后统一返回。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

import aiohttp
from loguru import logger

from packfetch.api.base import ModSite
from packfetch.exceptions import (
    DependencyLoadingError,
    DistributionDeniedError,
    LoadingError,
    MinecraftVersionMismatchError,
    MissingRequiredDependenciesError,
    ModsVerificationError,
    ModVerificationError,
    PackFetchError,
    UnsupportedLookupError,
)
from packfetch.models import (
    ConfigMod,
    DependencyId,
    DependencyIdKind,
    ModContainer,
    ModDependencyKind,
    ModInfo,
    VerifiedMod,
    VerifiedPack,
)
from packfetch.services.env_requirement import reconcile_mod
from packfetch.services.limiter import SiteLimiter

# 视为“加载失败”而不是程序错误的异常
LOAD_ERRORS = (PackFetchError, aiohttp.ClientError, asyncio.TimeoutError)


@dataclass(frozen=True)
class ClosureSets:
    """
    已满足的依赖标识集合。

    在任何依赖查询开始之前一次性构建，之后只读，可在并发任务间共享。
    """

    project_ids: FrozenSet = frozenset()
    version_ids: FrozenSet = frozenset()

    @classmethod
    def build(cls, mods: Dict[str, ConfigMod]) -> "ClosureSets":
        project_ids = set()
        version_ids = set()
        for config_mod in mods.values():
            project_ids.add(config_mod.source.project_id)
            version_ids.add(config_mod.source.version_id)
            # 忽略的依赖和可替代的依赖同样视为已满足
            for dep_id in [*config_mod.ignored_deps, *config_mod.substitute_for]:
                if dep_id.kind is DependencyIdKind.PROJECT:
                    project_ids.add(dep_id.value)
                else:
                    version_ids.add(dep_id.value)
        return cls(frozenset(project_ids), frozenset(version_ids))

    def __contains__(self, dep_id: DependencyId) -> bool:
        if dep_id.kind is DependencyIdKind.PROJECT:
            return dep_id.value in self.project_ids
        return dep_id.value in self.version_ids


@dataclass
class SiteVerification:
    """单个站点的校验结果"""

    site_name: str
    verified: Dict[str, VerifiedMod] = field(default_factory=dict)
    failures: Dict[str, ModVerificationError] = field(default_factory=dict)


class DependencyVerifier:
    """单个站点的依赖校验器"""

    def __init__(
        self,
        site: ModSite,
        limiter: SiteLimiter,
        minecraft_version: Optional[str] = None,
    ):
        """
        Args:
            site: 模组站点
            limiter: 该站点的并发限制器
            minecraft_version: 目标 Minecraft 版本，为 None 时不检查版本
        """
        self.site = site
        self.limiter = limiter
        self.minecraft_version = minecraft_version

    async def verify(
        self,
        mods: Dict[str, ConfigMod],
        closure: Optional[ClosureSets] = None,
    ) -> SiteVerification:
        """
        并发校验站点下的所有模组

        Args:
            mods: 配置键 -> 模组条目
            closure: 预先构建的依赖集合，缺省时在这里构建

        Returns:
            成功与失败分开记录的校验结果
        """
        if closure is None:
            closure = ClosureSets.build(mods)

        keys = sorted(mods)
        if keys:
            logger.info(f"[校验] [{self.site.name}] 开始校验 {len(keys)} 个模组...")

        results = await asyncio.gather(
            *(self._verify_task(key, mods[key], closure) for key in keys),
            return_exceptions=True,
        )

        outcome = SiteVerification(self.site.name)
        for cfg_id, result in zip(keys, results):
            if isinstance(result, VerifiedMod):
                outcome.verified[cfg_id] = result
                logger.success(
                    f"[校验] [{self.site.name}] 模组 {result.info.project_info.name} "
                    f"(配置: {cfg_id}) 校验通过"
                )
                continue
            if not isinstance(result, Exception):
                raise result
            if not isinstance(result, ModVerificationError):
                result = LoadingError(result)
            outcome.failures[cfg_id] = result
            logger.error(
                f"[校验] [{self.site.name}] 模组 (配置: {cfg_id}) 校验失败: {result}"
            )
        return outcome

    async def _verify_task(
        self, cfg_id: str, config_mod: ConfigMod, closure: ClosureSets
    ) -> VerifiedMod:
        async with self.limiter.slot():
            return await self.verify_mod(cfg_id, config_mod, closure)

    async def verify_mod(
        self, cfg_id: str, config_mod: ConfigMod, closure: ClosureSets
    ) -> VerifiedMod:
        """
        校验单个模组

        Raises:
            ModVerificationError: 任意一项校验失败
        """
        try:
            info = await self.limiter.retry(lambda: self.site.load_file(config_mod.source))
        except LOAD_ERRORS as e:
            raise LoadingError(e)

        if not info.project_info.distribution_allowed:
            raise DistributionDeniedError()

        if (
            self.minecraft_version is not None
            and self.minecraft_version not in info.minecraft_versions
        ):
            raise MinecraftVersionMismatchError(
                self.minecraft_version, list(info.minecraft_versions)
            )

        ignored = set(config_mod.ignored_deps)
        missing: List[str] = []
        for dep in info.dependencies:
            if dep.id in ignored:
                continue
            if dep.kind is ModDependencyKind.REQUIRED:
                name = await self._missing_dependency_name(dep.id, closure)
                if name is not None:
                    missing.append(f"{name} ({dep.id})")
            elif dep.kind is ModDependencyKind.OPTIONAL:
                await self._report_optional(cfg_id, dep.id, closure)

        if missing:
            raise MissingRequiredDependenciesError(missing)

        return VerifiedMod(
            source=config_mod.source,
            info=info,
            env_requirements=reconcile_mod(
                self.site.name, cfg_id, config_mod, info.project_info.side_info
            ),
        )

    async def _report_optional(
        self, cfg_id: str, dep_id: DependencyId, closure: ClosureSets
    ):
        """可选依赖缺失只做提示，查询失败也只记录警告"""
        try:
            name = await self._missing_dependency_name(dep_id, closure)
        except DependencyLoadingError as e:
            logger.warning(
                f"[{self.site.name}] 无法加载 {cfg_id} 的可选依赖 {dep_id}: {e.cause}"
            )
            return
        if name is not None:
            logger.info(
                f"[{self.site.name}] [FYI] {cfg_id} 缺少可选依赖: {name} ({dep_id})"
            )

    async def _missing_dependency_name(
        self, dep_id: DependencyId, closure: ClosureSets
    ) -> Optional[str]:
        """
        依赖已满足时返回 None，否则查询并返回其名称

        Raises:
            DependencyLoadingError: 查询依赖信息失败
        """
        if dep_id in closure:
            return None
        try:
            info = await self._load_dependency(dep_id)
        except LOAD_ERRORS as e:
            raise DependencyLoadingError(dep_id, e)
        return info.name

    async def _load_dependency(self, dep_id: DependencyId) -> ModInfo:
        if dep_id.kind is DependencyIdKind.PROJECT:
            return await self.limiter.retry(lambda: self.site.load_metadata(dep_id.value))

        info = None
        if self.site.supports_version_lookup:
            info = await self.limiter.retry(
                lambda: self.site.load_metadata_by_version(dep_id.value)
            )
        if info is None:
            raise UnsupportedLookupError(
                f"{self.site.name} 不支持按版本查询依赖",
                context={"version_id": str(dep_id.value)},
            )
        return info


async def verify_mods(
    mods: ModContainer,
    sites: Dict[str, ModSite],
    limiters: Dict[str, SiteLimiter],
    minecraft_version: Optional[str] = None,
) -> VerifiedPack:
    """
    并行校验两个站点的所有模组

    Args:
        mods: 按站点分组的模组
        sites: 站点名 -> 站点
        limiters: 站点名 -> 并发限制器
        minecraft_version: 目标 Minecraft 版本

    Returns:
        所有模组都通过时返回校验结果

    Raises:
        ModsVerificationError: 任一站点有模组失败，包含全部失败项
    """
    # 两个站点的依赖集合都在第一次查询之前构建完成
    plans: List[Tuple[DependencyVerifier, Dict[str, ConfigMod], ClosureSets]] = []
    for name, site in sites.items():
        site_mods = mods.for_site(name)
        plans.append(
            (
                DependencyVerifier(site, limiters[name], minecraft_version),
                site_mods,
                ClosureSets.build(site_mods),
            )
        )

    results = await asyncio.gather(
        *(verifier.verify(site_mods, closure) for verifier, site_mods, closure in plans)
    )

    pack = VerifiedPack()
    failures: Dict[str, ModVerificationError] = {}
    for result in results:
        pack.by_site()[result.site_name].update(result.verified)
        failures.update(result.failures)

    if failures:
        raise ModsVerificationError(failures)

    logger.success(f"[校验] 全部 {len(pack)} 个模组校验通过")
    return pack
