"""
文件校验器

按站点提供的最强哈希算法校验文件内容。
"""

import hashlib
import os
from enum import Enum
from typing import Dict, Optional, Tuple

import aiofiles

from packfetch.models import HashAlgorithm

READ_CHUNK_SIZE = 65536


class HashCheck(Enum):
    """校验结果"""

    MATCH = "match"
    MISMATCH = "mismatch"
    # 站点没有提供任何哈希
    INDETERMINATE = "indeterminate"


class FileVerifier:
    """文件校验器"""

    # 强到弱
    PREFERENCE = (HashAlgorithm.SHA512, HashAlgorithm.SHA1, HashAlgorithm.MD5)

    @classmethod
    def pick(
        cls, hashes: Optional[Dict[HashAlgorithm, str]]
    ) -> Optional[Tuple[HashAlgorithm, str]]:
        """
        选出可用的最强算法

        Returns:
            (算法, 期望值) 或 None（没有提供哈希）
        """
        for algo in cls.PREFERENCE:
            value = (hashes or {}).get(algo)
            if value:
                return algo, value.lower()
        return None

    @staticmethod
    def _new_digest(algo: HashAlgorithm):
        return hashlib.new(algo.value)

    @classmethod
    def check_bytes(
        cls, hashes: Optional[Dict[HashAlgorithm, str]], content: bytes
    ) -> HashCheck:
        """校验内存中的内容"""
        picked = cls.pick(hashes)
        if picked is None:
            return HashCheck.INDETERMINATE
        algo, expected = picked
        digest = cls._new_digest(algo)
        digest.update(content)
        return HashCheck.MATCH if digest.hexdigest() == expected else HashCheck.MISMATCH

    @classmethod
    async def calc_digest(cls, file_path: str, algo: HashAlgorithm) -> Optional[str]:
        """
        计算文件的哈希值

        Args:
            file_path: 文件路径
            algo: 哈希算法

        Returns:
            十六进制哈希值或 None（如果文件不存在）
        """
        if not os.path.isfile(file_path):
            return None

        digest = cls._new_digest(algo)
        async with aiofiles.open(file_path, "rb") as f:
            while True:
                data = await f.read(READ_CHUNK_SIZE)
                if not data:
                    break
                digest.update(data)
        return digest.hexdigest()

    @classmethod
    async def check_file(
        cls, file_path: str, hashes: Optional[Dict[HashAlgorithm, str]]
    ) -> HashCheck:
        """
        校验文件内容

        文件不存在视为不匹配；没有提供哈希时返回 INDETERMINATE。
        """
        picked = cls.pick(hashes)
        if picked is None:
            return HashCheck.INDETERMINATE
        algo, expected = picked
        actual = await cls.calc_digest(file_path, algo)
        if actual is None:
            return HashCheck.MISMATCH
        return HashCheck.MATCH if actual == expected else HashCheck.MISMATCH

    @classmethod
    async def is_cached(
        cls, file_path: str, hashes: Optional[Dict[HashAlgorithm, str]]
    ) -> bool:
        """文件存在且哈希匹配；INDETERMINATE 不算匹配"""
        if not os.path.exists(file_path):
            return False
        return await cls.check_file(file_path, hashes) is HashCheck.MATCH
