"""
CurseForge 站点 (API v1)
"""

from typing import AsyncIterator, Dict, List, Optional

from packfetch.api.base import ModSite, matches_loader
from packfetch.exceptions import ConfigError, DownloadError, NotAModError
from packfetch.models import (
    DependencyId,
    HashAlgorithm,
    ModDependency,
    ModDependencyKind,
    ModFileInfo,
    ModId,
    ModInfo,
    ModLoader,
)

CURSEFORGE_BASE_URL = "https://api.curseforge.com/v1"
MODS_CLASS_ID = 6

# FileRelationType
_RELATION_KINDS = {
    3: ModDependencyKind.REQUIRED,
    2: ModDependencyKind.OPTIONAL,
}

# HashAlgo
_HASH_ALGORITHMS = {
    1: HashAlgorithm.SHA1,
    2: HashAlgorithm.MD5,
}

# ModLoaderType
_LOADER_TYPES = {
    ModLoader.FORGE: 1,
    ModLoader.FABRIC: 4,
    ModLoader.QUILT: 5,
    ModLoader.NEOFORGE: 6,
}


class CurseForgeSite(ModSite):
    """CurseForge 站点，标识为整数，需要 API Key"""

    name = "curseforge"
    id_type = int
    supports_version_lookup = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        *args,
        base_url: str = CURSEFORGE_BASE_URL,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.api_key = api_key
        self.base_url = base_url

    def _headers(self) -> Dict[str, str]:
        # 只有真正发起请求时才要求 API Key
        if not self.api_key:
            raise ConfigError(
                "未配置 CurseForge API Key，请设置 PACKFETCH_CURSEFORGE_API_KEY"
            )
        return {"x-api-key": self.api_key, "Accept": "application/json"}

    async def get_mod(self, project_id: int) -> dict:
        return (await self._get_json(f"{self.base_url}/mods/{project_id}"))["data"]

    async def get_mod_file(self, project_id: int, file_id: int) -> dict:
        return (
            await self._get_json(f"{self.base_url}/mods/{project_id}/files/{file_id}")
        )["data"]

    async def load_metadata(self, project_id: int) -> ModInfo:
        return self.parse_mod(await self.get_mod(project_id))

    async def load_file(self, mod_id: ModId) -> ModFileInfo:
        project_info = await self.load_metadata(mod_id.project_id)
        file = await self.get_mod_file(mod_id.project_id, mod_id.version_id)
        return self.parse_file(project_info, file)

    async def download(self, mod_id: ModId) -> AsyncIterator[bytes]:
        file = await self.get_mod_file(mod_id.project_id, mod_id.version_id)
        url = file.get("downloadUrl")
        if not url:
            raise DownloadError(
                f"CurseForge 文件 {mod_id} 没有下载地址（可能不允许第三方分发）",
                context={"mod_id": str(mod_id)},
            )
        async for chunk in self._stream(url):
            yield chunk

    async def get_latest_version(
        self, project_id: int, minecraft_version: str, loader: ModLoader
    ) -> Optional[int]:
        params = {
            "gameVersion": minecraft_version,
            "modLoaderType": _LOADER_TYPES[loader],
        }
        response = await self._get_json(
            f"{self.base_url}/mods/{project_id}/files", params
        )
        files = sorted(
            response.get("data") or [],
            key=lambda f: f.get("fileDate", ""),
            reverse=True,
        )
        for file in files:
            game_versions = file.get("gameVersions", [])
            if minecraft_version not in game_versions:
                continue
            # gameVersions 中混有加载器名称，例如 "Forge"、"NeoForge"
            if not matches_loader(game_versions, loader):
                continue
            return file["id"]
        return None

    @staticmethod
    def parse_mod(data: dict) -> ModInfo:
        """将模组信息转换为 ModInfo，非模组项目抛出 NotAModError"""
        if data.get("classId") not in (None, MODS_CLASS_ID):
            raise NotAModError(
                f"项目 {data.get('name', data.get('id'))} 存在，但不是模组",
                context={"class_id": data.get("classId")},
            )
        allowed = data.get("allowModDistribution")
        return ModInfo(
            name=data["name"],
            # 未声明时视为允许
            distribution_allowed=True if allowed is None else bool(allowed),
        )

    @classmethod
    def parse_file(cls, project_info: ModInfo, file: dict) -> ModFileInfo:
        """
        将 CurseForge API 返回的文件信息转换为 ModFileInfo 对象。
        """
        hashes = {}
        for item in file.get("hashes") or []:
            algo = _HASH_ALGORITHMS.get(item.get("algo"))
            if algo and item.get("value"):
                hashes[algo] = item["value"]
        return ModFileInfo(
            project_info=project_info,
            filename=file["fileName"],
            url=file.get("downloadUrl"),
            file_length=int(file.get("fileLength", 0)),
            minecraft_versions=tuple(file.get("gameVersions", [])),
            dependencies=tuple(cls.parse_dependencies(file)),
            hashes=hashes,
        )

    @staticmethod
    def parse_dependencies(file: dict) -> List[ModDependency]:
        return [
            ModDependency(
                id=DependencyId.project(dep["modId"]),
                kind=_RELATION_KINDS.get(dep.get("relationType"), ModDependencyKind.OTHER),
            )
            for dep in file.get("dependencies") or []
        ]
