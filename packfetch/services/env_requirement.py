"""
环境需求调和

把配置声明的单侧需求与站点声明的支持情况合并为权威需求。
"""

from typing import Optional, Tuple

from loguru import logger

from packfetch.models import (
    ConfigMod,
    EnvRequirement,
    KnownEnvRequirement,
    KnownEnvRequirements,
    SideInfo,
)

_KNOWN = {
    EnvRequirement.REQUIRED: KnownEnvRequirement.REQUIRED,
    EnvRequirement.OPTIONAL: KnownEnvRequirement.OPTIONAL,
    EnvRequirement.UNSUPPORTED: KnownEnvRequirement.UNSUPPORTED,
}

CONFIG_ALLOWS_SITE_UNSUPPORTED = "配置允许该侧，但站点声明不支持"
SITE_ALLOWS_CONFIG_UNSUPPORTED = "站点允许该侧，但配置声明不支持"


def reconcile(
    config: EnvRequirement, site: EnvRequirement
) -> Tuple[KnownEnvRequirement, Optional[str]]:
    """
    合并单侧的配置需求与站点需求

    配置为 UNKNOWN 时以站点为准（站点也未知则视为必需）；
    否则以配置为准，两者冲突时附带一条警告。

    Returns:
        (权威需求, 警告信息或 None)
    """
    if config is EnvRequirement.UNKNOWN:
        return _KNOWN.get(site, KnownEnvRequirement.REQUIRED), None

    if config is EnvRequirement.UNSUPPORTED:
        if site in (EnvRequirement.REQUIRED, EnvRequirement.OPTIONAL):
            return KnownEnvRequirement.UNSUPPORTED, SITE_ALLOWS_CONFIG_UNSUPPORTED
        return KnownEnvRequirement.UNSUPPORTED, None

    if site is EnvRequirement.UNSUPPORTED:
        return _KNOWN[config], CONFIG_ALLOWS_SITE_UNSUPPORTED
    return _KNOWN[config], None


def reconcile_mod(
    site_name: str, cfg_id: str, config_mod: ConfigMod, side_info: SideInfo
) -> KnownEnvRequirements:
    """调和模组双侧需求，冲突只记录警告"""
    client, client_warning = reconcile(config_mod.client, side_info.client)
    server, server_warning = reconcile(config_mod.server, side_info.server)
    for side, warning in (("client", client_warning), ("server", server_warning)):
        if warning:
            logger.warning(f"[{site_name}] 模组 {cfg_id} 的 {side} 侧: {warning}")
    return KnownEnvRequirements(client=client, server=server)
