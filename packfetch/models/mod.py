"""
模组数据模型

定义两个模组站点共用的规范化模型：模组标识、依赖标识、环境需求、
文件信息以及校验通过后的模组。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from packfetch.exceptions import ConfigValidationError

# 站点原生的标识类型：CurseForge 为 int，Modrinth 为 str。
# 只要求可比较、可哈希、可转为字符串。
IdValue = Any


@dataclass(frozen=True)
class ModId:
    """模组在站点上的标识（项目 + 具体版本/文件）"""

    project_id: IdValue
    version_id: IdValue

    def __str__(self) -> str:
        return f"{self.project_id}/{self.version_id}"


class DependencyIdKind(Enum):
    """依赖标识所在的维度"""

    PROJECT = "project_id"
    VERSION = "version_id"


@dataclass(frozen=True)
class DependencyId:
    """
    依赖标识，按项目或按版本二选一。

    站点可能只按其中一种维度报告依赖，两者不会同时出现。
    """

    kind: DependencyIdKind
    value: IdValue

    @classmethod
    def project(cls, value: IdValue) -> "DependencyId":
        return cls(DependencyIdKind.PROJECT, value)

    @classmethod
    def version(cls, value: IdValue) -> "DependencyId":
        return cls(DependencyIdKind.VERSION, value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], id_type: type = str) -> "DependencyId":
        """
        从配置解析依赖标识，project_id 与 version_id 必须恰好出现一个。

        Args:
            data: 配置中的依赖项，例如 {"project_id": 42}
            id_type: 站点标识的类型

        Raises:
            ConfigValidationError: 两个字段都存在、都不存在或类型错误
        """
        if not isinstance(data, dict):
            raise ConfigValidationError(f"依赖标识必须是表: {data!r}")
        present = [kind for kind in DependencyIdKind if kind.value in data]
        if len(present) != 1:
            raise ConfigValidationError(
                f"依赖标识必须且只能包含 project_id 或 version_id 之一: {data!r}"
            )
        extra = set(data) - {kind.value for kind in DependencyIdKind}
        if extra:
            raise ConfigValidationError(f"依赖标识包含未知字段: {sorted(extra)}")
        kind = present[0]
        return cls(kind, check_id_type(data[kind.value], id_type, kind.value))

    def to_dict(self) -> Dict[str, Any]:
        return {self.kind.value: self.value}

    def __str__(self) -> str:
        return str(self.value)


def check_id_type(value: Any, id_type: type, field_name: str) -> IdValue:
    """校验站点标识的类型（bool 不算作 int）"""
    if isinstance(value, bool) or not isinstance(value, id_type):
        raise ConfigValidationError(
            f"{field_name} 必须是 {id_type.__name__} 类型，实际为 {value!r}"
        )
    return value


class EnvRequirement(Enum):
    """配置或站点声明的单侧环境需求"""

    UNKNOWN = "unknown"
    REQUIRED = "required"
    OPTIONAL = "optional"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, value: Optional[str]) -> "EnvRequirement":
        """宽松解析，未知取值视为 UNKNOWN"""
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


class KnownEnvRequirement(Enum):
    """调和之后的权威环境需求"""

    REQUIRED = "required"
    OPTIONAL = "optional"
    UNSUPPORTED = "unsupported"

    def is_needed(self, include_optional: bool) -> bool:
        """在是否包含可选模组的前提下，该模组是否需要"""
        if self is KnownEnvRequirement.REQUIRED:
            return True
        if self is KnownEnvRequirement.OPTIONAL:
            return include_optional
        return False


class Side(Enum):
    """Minecraft 安装的一侧"""

    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class SideInfo:
    """站点声明的双侧支持情况"""

    client: EnvRequirement = EnvRequirement.UNKNOWN
    server: EnvRequirement = EnvRequirement.UNKNOWN


@dataclass(frozen=True)
class KnownEnvRequirements:
    """调和后的双侧需求"""

    client: KnownEnvRequirement
    server: KnownEnvRequirement

    def for_side(self, side: Side) -> KnownEnvRequirement:
        return self.client if side is Side.CLIENT else self.server


@dataclass(frozen=True)
class ModInfo:
    """
    模组项目信息。
    """

    name: str
    distribution_allowed: bool
    side_info: SideInfo = field(default_factory=SideInfo)


class HashAlgorithm(Enum):
    """哈希算法，定义顺序即优先级（强到弱）"""

    SHA512 = "sha512"
    SHA1 = "sha1"
    MD5 = "md5"


class ModDependencyKind(Enum):
    """依赖类型"""

    REQUIRED = "required"
    OPTIONAL = "optional"
    OTHER = "other"


@dataclass(frozen=True)
class ModDependency:
    """依赖信息"""

    id: DependencyId
    kind: ModDependencyKind


@dataclass(frozen=True)
class ModFileInfo:
    """
    已解析、可下载的模组文件。
    """

    project_info: ModInfo
    filename: str
    url: Optional[str]
    file_length: int
    minecraft_versions: Tuple[str, ...] = ()
    dependencies: Tuple[ModDependency, ...] = ()
    hashes: Dict[HashAlgorithm, str] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class VerifiedMod:
    """
    通过校验的模组，只在校验成功后创建。
    """

    source: ModId
    info: ModFileInfo
    env_requirements: KnownEnvRequirements


@dataclass
class VerifiedPack:
    """两个站点的校验结果，按配置键索引"""

    curseforge: Dict[str, VerifiedMod] = field(default_factory=dict)
    modrinth: Dict[str, VerifiedMod] = field(default_factory=dict)

    def by_site(self) -> Dict[str, Dict[str, VerifiedMod]]:
        return {"curseforge": self.curseforge, "modrinth": self.modrinth}

    def __len__(self) -> int:
        return len(self.curseforge) + len(self.modrinth)


__all__ = [
    "IdValue",
    "ModId",
    "DependencyIdKind",
    "DependencyId",
    "check_id_type",
    "EnvRequirement",
    "KnownEnvRequirement",
    "Side",
    "SideInfo",
    "KnownEnvRequirements",
    "ModInfo",
    "HashAlgorithm",
    "ModDependencyKind",
    "ModDependency",
    "ModFileInfo",
    "VerifiedMod",
    "VerifiedPack",
]
