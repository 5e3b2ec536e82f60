"""
Modrinth 站点 (API v2)
"""

from typing import AsyncIterator, List, Optional

from loguru import logger

from packfetch.api.base import ModSite, matches_loader
from packfetch.exceptions import NoFilesError, NotAModError
from packfetch.models import (
    DependencyId,
    EnvRequirement,
    HashAlgorithm,
    ModDependency,
    ModDependencyKind,
    ModFileInfo,
    ModId,
    ModInfo,
    ModLoader,
    SideInfo,
)

MODRINTH_BASE_URL = "https://api.modrinth.com/v2"

_DEPENDENCY_KINDS = {
    "required": ModDependencyKind.REQUIRED,
    "optional": ModDependencyKind.OPTIONAL,
}


class ModrinthSite(ModSite):
    """Modrinth 站点，标识为字符串"""

    name = "modrinth"
    id_type = str
    supports_version_lookup = True

    def __init__(self, *args, base_url: str = MODRINTH_BASE_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = base_url

    async def get_project(self, project_id: str) -> dict:
        return await self._get_json(f"{self.base_url}/project/{project_id}")

    async def get_version(self, version_id: str) -> dict:
        return await self._get_json(f"{self.base_url}/version/{version_id}")

    async def load_metadata(self, project_id: str) -> ModInfo:
        return self.parse_project(await self.get_project(project_id))

    async def load_metadata_by_version(self, version_id: str) -> Optional[ModInfo]:
        version = await self.get_version(version_id)
        return await self.load_metadata(version["project_id"])

    async def load_file(self, mod_id: ModId) -> ModFileInfo:
        project_info = await self.load_metadata(mod_id.project_id)
        version = await self.get_version(mod_id.version_id)
        return self.parse_version(project_info, version)

    async def download(self, mod_id: ModId) -> AsyncIterator[bytes]:
        version = await self.get_version(mod_id.version_id)
        file = self.primary_file(version)
        async for chunk in self._stream(file["url"]):
            yield chunk

    async def get_latest_version(
        self, project_id: str, minecraft_version: str, loader: ModLoader
    ) -> Optional[str]:
        params = {
            "game_versions": f'["{minecraft_version}"]',
            "loaders": f'["{loader.value}"]',
        }
        versions = await self._get_json(
            f"{self.base_url}/project/{project_id}/version", params
        )
        # 接口按发布时间倒序返回，这里再按加载器过滤一次
        for version in versions or []:
            if minecraft_version not in version.get("game_versions", []):
                continue
            if not matches_loader(version.get("loaders", []), loader):
                continue
            return version["id"]
        return None

    @staticmethod
    def parse_project(data: dict) -> ModInfo:
        """将项目信息转换为 ModInfo，非模组项目抛出 NotAModError"""
        if data.get("project_type") != "mod":
            raise NotAModError(
                f"项目 {data.get('title', data.get('id'))} 存在，但不是模组",
                context={"project_type": data.get("project_type")},
            )
        return ModInfo(
            name=data["title"],
            # Modrinth 上的项目都允许分发
            distribution_allowed=True,
            side_info=SideInfo(
                client=EnvRequirement.parse(data.get("client_side")),
                server=EnvRequirement.parse(data.get("server_side")),
            ),
        )

    @staticmethod
    def primary_file(version: dict) -> dict:
        """获取主文件信息"""
        files = version.get("files") or []
        if not files:
            raise NoFilesError(
                f"版本 {version.get('id')} 没有任何文件",
                context={"version_id": version.get("id")},
            )
        for file in files:
            if file.get("primary", False):
                return file
        return files[0]

    @classmethod
    def parse_version(cls, project_info: ModInfo, version: dict) -> ModFileInfo:
        """
        将 Modrinth API 返回的版本信息转换为 ModFileInfo 对象。
        """
        file = cls.primary_file(version)
        hashes = {}
        for algo in (HashAlgorithm.SHA512, HashAlgorithm.SHA1):
            value = (file.get("hashes") or {}).get(algo.value)
            if value:
                hashes[algo] = value
        return ModFileInfo(
            project_info=project_info,
            filename=file["filename"],
            url=file["url"],
            file_length=int(file.get("size", 0)),
            minecraft_versions=tuple(version.get("game_versions", [])),
            dependencies=tuple(cls.parse_dependencies(version)),
            hashes=hashes,
        )

    @staticmethod
    def parse_dependencies(version: dict) -> List[ModDependency]:
        dependencies = []
        for dep in version.get("dependencies") or []:
            # 两者都有时以项目为准
            if dep.get("project_id"):
                dep_id = DependencyId.project(dep["project_id"])
            elif dep.get("version_id"):
                dep_id = DependencyId.version(dep["version_id"])
            else:
                logger.debug(f"[modrinth] 跳过没有标识的依赖: {dep}")
                continue
            dependencies.append(
                ModDependency(
                    id=dep_id,
                    kind=_DEPENDENCY_KINDS.get(
                        dep.get("dependency_type"), ModDependencyKind.OTHER
                    ),
                )
            )
        return dependencies
