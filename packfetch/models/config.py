"""
配置数据模型

整合包配置：基本信息、模组加载器以及按站点分组的模组列表。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from packfetch.exceptions import ConfigValidationError
from packfetch.models.mod import (
    DependencyId,
    EnvRequirement,
    ModId,
    check_id_type,
)


class ModLoader(Enum):
    """模组加载器"""

    FORGE = "forge"
    NEOFORGE = "neoforge"
    FABRIC = "fabric"
    QUILT = "quilt"


@dataclass
class ModLoaderConfig:
    """整合包使用的加载器及其版本"""

    id: ModLoader
    version: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModLoaderConfig":
        _require_table(data, "mod_loader")
        _reject_unknown(data, {"id", "version"}, "mod_loader")
        try:
            loader = ModLoader(str(data.get("id", "")).lower())
        except ValueError:
            raise ConfigValidationError(
                f"mod_loader.id 必须为 forge/neoforge/fabric/quilt，实际为 {data.get('id')!r}"
            )
        return cls(id=loader, version=str(_require(data, "version", "mod_loader")))


@dataclass
class ConfigMod:
    """配置中的单个模组条目"""

    source: ModId
    client: EnvRequirement = EnvRequirement.UNKNOWN
    server: EnvRequirement = EnvRequirement.UNKNOWN
    # 校验时忽略的依赖
    ignored_deps: List[DependencyId] = field(default_factory=list)
    # 该条目可以满足的其他依赖标识
    substitute_for: List[DependencyId] = field(default_factory=list)

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any], id_type: type) -> "ConfigMod":
        """
        解析单个模组条目

        Args:
            key: 配置键，仅用于错误信息
            data: 条目内容
            id_type: 站点标识类型（CurseForge 为 int，Modrinth 为 str）
        """
        where = f"mods.{key}"
        _require_table(data, where)
        _reject_unknown(
            data,
            {"project_id", "version_id", "client", "server", "ignored_deps", "substitute_for"},
            where,
        )
        source = ModId(
            project_id=check_id_type(
                _require(data, "project_id", where), id_type, f"{where}.project_id"
            ),
            version_id=check_id_type(
                _require(data, "version_id", where), id_type, f"{where}.version_id"
            ),
        )
        return cls(
            source=source,
            client=_parse_env(data.get("client"), f"{where}.client"),
            server=_parse_env(data.get("server"), f"{where}.server"),
            ignored_deps=_parse_dep_ids(data.get("ignored_deps", []), id_type, where),
            substitute_for=_parse_dep_ids(data.get("substitute_for", []), id_type, where),
        )


@dataclass
class ModContainer:
    """按站点分组的模组"""

    curseforge: Dict[str, ConfigMod] = field(default_factory=dict)
    modrinth: Dict[str, ConfigMod] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ModContainer":
        data = data or {}
        _require_table(data, "mods")
        _reject_unknown(data, {"curseforge", "modrinth"}, "mods")
        curseforge = {
            str(k): ConfigMod.from_dict(k, v, int)
            for k, v in (data.get("curseforge") or {}).items()
        }
        modrinth = {
            str(k): ConfigMod.from_dict(k, v, str)
            for k, v in (data.get("modrinth") or {}).items()
        }
        # 失败报告只按配置键索引，跨站点重名会相互覆盖
        duplicated = sorted(set(curseforge) & set(modrinth))
        if duplicated:
            raise ConfigValidationError(
                f"以下配置键同时出现在 curseforge 和 modrinth 中: {duplicated}"
            )
        return cls(curseforge=curseforge, modrinth=modrinth)

    def for_site(self, site_name: str) -> Dict[str, ConfigMod]:
        if site_name == "curseforge":
            return self.curseforge
        if site_name == "modrinth":
            return self.modrinth
        raise KeyError(site_name)


@dataclass
class PackConfig:
    """整合包配置"""

    name: str
    description: str
    author: str
    version: str
    minecraft_version: str
    mod_loader: ModLoaderConfig
    mods: ModContainer = field(default_factory=ModContainer)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackConfig":
        _require_table(data, "config")
        _reject_unknown(
            data,
            {
                "name",
                "description",
                "author",
                "version",
                "minecraft_version",
                "mod_loader",
                "mods",
            },
            "config",
        )
        return cls(
            name=str(_require(data, "name", "config")),
            description=str(data.get("description", "")),
            author=str(data.get("author", "")),
            version=str(_require(data, "version", "config")),
            minecraft_version=str(_require(data, "minecraft_version", "config")),
            mod_loader=ModLoaderConfig.from_dict(_require(data, "mod_loader", "config")),
            mods=ModContainer.from_dict(data.get("mods")),
        )


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigValidationError(f"{where} 缺少必填字段 {key}")
    return data[key]


def _require_table(data: Any, where: str):
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{where} 必须是表，实际为 {type(data).__name__}")


def _reject_unknown(data: Dict[str, Any], allowed: set, where: str):
    unknown = set(data) - allowed
    if unknown:
        raise ConfigValidationError(f"{where} 包含未知字段: {sorted(unknown)}")


def _parse_env(value: Optional[str], where: str) -> EnvRequirement:
    if value is None:
        return EnvRequirement.UNKNOWN
    try:
        return EnvRequirement(str(value).lower())
    except ValueError:
        raise ConfigValidationError(
            f"{where} 必须为 unknown/required/optional/unsupported，实际为 {value!r}"
        )


def _parse_dep_ids(values: Any, id_type: type, where: str) -> List[DependencyId]:
    if not isinstance(values, list):
        raise ConfigValidationError(f"{where} 的依赖列表必须是数组")
    return [DependencyId.from_dict(v, id_type) for v in values]
