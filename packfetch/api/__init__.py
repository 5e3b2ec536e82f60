"""
PackFetch 站点层

包含模组站点抽象以及 CurseForge、Modrinth 两个实现。
"""

from packfetch.api.base import ModSite, matches_loader
from packfetch.api.curseforge import CurseForgeSite
from packfetch.api.modrinth import ModrinthSite

__all__ = [
    "ModSite",
    "matches_loader",
    "CurseForgeSite",
    "ModrinthSite",
]
