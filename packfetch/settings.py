"""
全局设置

默认值 -> ~/.config/packfetch/config.toml -> 环境变量，后者覆盖前者。
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from loguru import logger

from packfetch.exceptions import ConfigParseError, ConfigValidationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "packfetch" / "config.toml"

ENV_PREFIX = "PACKFETCH_"


@dataclass
class Settings:
    """全局设置"""

    curseforge_api_key: Optional[str] = None
    # 每个站点同时进行的网络操作数
    max_concurrent: int = 5
    # 速率限制的最大重试次数
    max_retries: int = 5
    # 重试退避下限的基数（秒）
    retry_delay: float = 1.0
    request_timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigValidationError(f"全局配置包含未知字段: {sorted(unknown)}")
        settings = cls()
        for key, value in data.items():
            setattr(settings, key, _coerce(known[key].type, key, value))
        return settings

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "Settings":
        """
        加载全局设置

        Args:
            path: 配置文件路径，默认 ~/.config/packfetch/config.toml
            environ: 环境变量，默认 os.environ
        """
        path = path or DEFAULT_CONFIG_PATH
        environ = os.environ if environ is None else environ

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                data = toml.load(str(path))
            except (toml.TomlDecodeError, OSError) as e:
                raise ConfigParseError(f"无法读取全局配置 {path}: {e}")
            logger.debug(f"已加载全局配置: {path}")

        for f in fields(cls):
            value = environ.get(ENV_PREFIX + f.name.upper())
            if value is not None:
                data[f.name] = value

        settings = cls.from_dict(data)
        if settings.max_concurrent < 1:
            raise ConfigValidationError("max_concurrent 必须大于 0")
        return settings


def _coerce(field_type: Any, key: str, value: Any) -> Any:
    if field_type in (int, "int"):
        caster = int
    elif field_type in (float, "float"):
        caster = float
    else:
        return None if value in (None, "") else str(value)
    try:
        return caster(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"全局配置 {key} 的值无效: {value!r}")
