"""
整合包配置文件读写

按后缀支持 TOML、JSON、YAML。
"""

import json
import shutil
from pathlib import Path
from typing import Any, Dict

import toml
import yaml
from loguru import logger

from packfetch.exceptions import ConfigError, ConfigParseError

SUPPORTED_SUFFIXES = (".toml", ".json", ".yaml", ".yml")


def _suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigError(f"不支持的配置文件格式: {suffix}")
    return suffix


def load_config(config_path: str) -> Dict[str, Any]:
    """加载配置文件"""
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    suffix = _suffix(path)
    try:
        if suffix == ".toml":
            data = toml.load(str(path))
        elif suffix == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
        else:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(f"无法解析配置文件 {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigParseError(f"配置文件顶层必须是表: {config_path}")
    return data


def save_config(config_path: str, data: Dict[str, Any]) -> Path:
    """
    写回配置文件，写入前备份为 <文件名>.bak

    Returns:
        备份文件路径
    """
    path = Path(config_path)
    suffix = _suffix(path)
    backup = path.with_name(path.name + ".bak")
    shutil.copy2(path, backup)
    logger.debug(f"已备份配置文件: {backup}")

    if suffix == ".toml":
        text = toml.dumps(data)
    elif suffix == ".json":
        text = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    else:
        text = yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
    path.write_text(text, encoding="utf-8")
    return backup
