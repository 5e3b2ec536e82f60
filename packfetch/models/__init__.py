"""
PackFetch 数据模型包

包含配置模型和模组模型定义。
"""

from packfetch.models.config import (
    ModLoader,
    ModLoaderConfig,
    ConfigMod,
    ModContainer,
    PackConfig,
)
from packfetch.models.mod import (
    ModId,
    DependencyIdKind,
    DependencyId,
    EnvRequirement,
    KnownEnvRequirement,
    KnownEnvRequirements,
    Side,
    SideInfo,
    ModInfo,
    HashAlgorithm,
    ModDependencyKind,
    ModDependency,
    ModFileInfo,
    VerifiedMod,
    VerifiedPack,
)

__all__ = [
    # 配置模型
    "ModLoader",
    "ModLoaderConfig",
    "ConfigMod",
    "ModContainer",
    "PackConfig",
    # 模组模型
    "ModId",
    "DependencyIdKind",
    "DependencyId",
    "EnvRequirement",
    "KnownEnvRequirement",
    "KnownEnvRequirements",
    "Side",
    "SideInfo",
    "ModInfo",
    "HashAlgorithm",
    "ModDependencyKind",
    "ModDependency",
    "ModFileInfo",
    "VerifiedMod",
    "VerifiedPack",
]
