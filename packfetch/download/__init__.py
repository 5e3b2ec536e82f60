"""
PackFetch 下载层

包含下载管理、本地缓存命中判断、文件校验等功能。
"""

from packfetch.download.manager import DownloadManager, DownloadStats, side_predicate
from packfetch.download.verifier import FileVerifier, HashCheck

__all__ = [
    "DownloadManager",
    "DownloadStats",
    "side_predicate",
    "FileVerifier",
    "HashCheck",
]
