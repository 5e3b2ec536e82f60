"""
PackFetch 服务层

包含业务逻辑服务：并发限制、环境需求调和、依赖校验、添加模组。
"""

from packfetch.services.limiter import SiteLimiter
from packfetch.services.env_requirement import reconcile, reconcile_mod
from packfetch.services.dependency_verifier import (
    ClosureSets,
    DependencyVerifier,
    SiteVerification,
    verify_mods,
)
from packfetch.services.mod_adder import ModAdder, slugify

__all__ = [
    "SiteLimiter",
    "reconcile",
    "reconcile_mod",
    "ClosureSets",
    "DependencyVerifier",
    "SiteVerification",
    "verify_mods",
    "ModAdder",
    "slugify",
]
