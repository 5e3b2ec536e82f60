import asyncio
import hashlib
from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from packfetch.api.base import ModSite
from packfetch.exceptions import APINotFoundError, APIRateLimitError
from packfetch.models import (
    ConfigMod,
    DependencyId,
    EnvRequirement,
    HashAlgorithm,
    ModDependency,
    ModDependencyKind,
    ModFileInfo,
    ModId,
    ModInfo,
    SideInfo,
)
from packfetch.services.limiter import SiteLimiter

MC_VERSION = "1.20.1"


class FakeSite(ModSite):
    """内存中的站点，记录每一次“网络”调用"""

    def __init__(
        self,
        name: str = "modrinth",
        id_type: type = str,
        supports_version_lookup: bool = True,
        delay: float = 0.0,
    ):
        super().__init__()
        self.name = name
        self.id_type = id_type
        self.supports_version_lookup = supports_version_lookup
        self.delay = delay
        self.projects: Dict = {}
        self.files: Dict[ModId, ModFileInfo] = {}
        self.version_projects: Dict = {}
        self.contents: Dict[ModId, bytes] = {}
        self.latest: Dict = {}
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        # 调用类型 -> 剩余的限流次数
        self.rate_limited: Dict[str, int] = {}

    def add_mod(
        self,
        project_id,
        version_id,
        name: str,
        dependencies=(),
        minecraft_versions=(MC_VERSION,),
        distribution_allowed: bool = True,
        side_info: SideInfo = SideInfo(),
        content: Optional[bytes] = None,
        with_hash: bool = True,
        filename: Optional[str] = None,
    ) -> ModFileInfo:
        content = content if content is not None else f"jar:{name}".encode()
        info = ModFileInfo(
            project_info=ModInfo(name, distribution_allowed, side_info),
            filename=filename or f"{name.replace(' ', '-').lower()}.jar",
            url=f"https://example.invalid/{version_id}.jar",
            file_length=len(content),
            minecraft_versions=tuple(minecraft_versions),
            dependencies=tuple(dependencies),
            hashes={HashAlgorithm.SHA512: hashlib.sha512(content).hexdigest()}
            if with_hash
            else {},
        )
        mod_id = ModId(project_id, version_id)
        self.projects[project_id] = info.project_info
        self.files[mod_id] = info
        self.version_projects[version_id] = project_id
        self.contents[mod_id] = content
        return info

    def add_project(self, project_id, name: str, version_id=None):
        self.projects[project_id] = ModInfo(name, True)
        if version_id is not None:
            self.version_projects[version_id] = project_id

    def lookups(self, kind: str) -> list:
        return [value for call, value in self.calls if call == kind]

    async def _track(self):
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    def _check_rate_limit(self, kind: str):
        remaining = self.rate_limited.get(kind, 0)
        if remaining > 0:
            self.rate_limited[kind] = remaining - 1
            raise APIRateLimitError(f"[{self.name}] 触发速率限制")

    async def load_metadata(self, project_id) -> ModInfo:
        self.calls.append(("metadata", project_id))
        await self._track()
        if project_id not in self.projects:
            raise APINotFoundError(f"项目 {project_id} 不存在")
        return self.projects[project_id]

    async def load_metadata_by_version(self, version_id) -> Optional[ModInfo]:
        self.calls.append(("metadata_by_version", version_id))
        if not self.supports_version_lookup:
            return None
        if version_id not in self.version_projects:
            raise APINotFoundError(f"版本 {version_id} 不存在")
        return self.projects[self.version_projects[version_id]]

    async def load_file(self, mod_id: ModId) -> ModFileInfo:
        self.calls.append(("file", mod_id))
        self._check_rate_limit("file")
        await self._track()
        if mod_id not in self.files:
            raise APINotFoundError(f"文件 {mod_id} 不存在")
        info = self.files[mod_id]
        return replace(info, project_info=self.projects[mod_id.project_id])

    async def download(self, mod_id: ModId):
        self.calls.append(("download", mod_id))
        self._check_rate_limit("download")
        content = self.contents[mod_id]
        for i in range(0, len(content), 4):
            yield content[i : i + 4]

    async def get_latest_version(self, project_id, minecraft_version, loader):
        self.calls.append(("latest", project_id))
        return self.latest.get(project_id)


def required(dep_id: DependencyId) -> ModDependency:
    return ModDependency(dep_id, ModDependencyKind.REQUIRED)


def optional(dep_id: DependencyId) -> ModDependency:
    return ModDependency(dep_id, ModDependencyKind.OPTIONAL)


def config_mod(
    project_id,
    version_id,
    ignored=(),
    substitute_for=(),
    client: EnvRequirement = EnvRequirement.UNKNOWN,
    server: EnvRequirement = EnvRequirement.UNKNOWN,
) -> ConfigMod:
    return ConfigMod(
        source=ModId(project_id, version_id),
        client=client,
        server=server,
        ignored_deps=list(ignored),
        substitute_for=list(substitute_for),
    )


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_limiter(sleeps):
    def factory(name: str = "modrinth", max_concurrent: int = 5, max_retries: int = 5):
        return SiteLimiter(
            name,
            max_concurrent=max_concurrent,
            max_retries=max_retries,
            retry_delay=1.0,
            sleep=sleeps,
        )

    return factory
