"""
日志模块

使用 loguru 提供统一的日志记录功能。
"""

import os
import sys
from typing import Optional

from loguru import logger

_BASE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
_VERBOSE_FORMAT = _BASE_FORMAT + "<dim>[{name}:{line}]</dim> {message}"

VERBOSITY_LEVELS = ("INFO", "DEBUG", "TRACE")


def level_for_verbosity(verbosity: int) -> str:
    """把命令行 -v 的次数转换为日志级别"""
    if os.environ.get("PACKFETCH_DEBUG", "0") == "1":
        verbosity = max(verbosity, 1)
    return VERBOSITY_LEVELS[min(max(verbosity, 0), len(VERBOSITY_LEVELS) - 1)]


def setup_logger(
    level: Optional[str] = None,
    verbosity: int = 0,
    sink=sys.stderr,
    enqueue: bool = True,
    colorize: bool = True,
) -> str:
    """
    设置日志记录器

    Args:
        level: 日志级别，显式指定时忽略 verbosity
        verbosity: 详细程度 (0=INFO, 1=DEBUG, 2+=TRACE)
        sink: 输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色

    Returns:
        实际使用的日志级别
    """
    if level is None:
        level = level_for_verbosity(verbosity)
    verbose = level != "INFO"

    logger.remove()
    logger.add(
        sink=sink,
        # 详细模式下带上日志来源位置
        format=_VERBOSE_FORMAT if verbose else _BASE_FORMAT + "{message}",
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=verbose,
        diagnose=verbose,
    )

    logger.debug(f"日志级别: {level}")
    return level


__all__ = ["logger", "setup_logger", "level_for_verbosity"]
