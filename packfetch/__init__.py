"""
PackFetch - Minecraft 整合包模组校验与下载工具
"""

__version__ = "0.1.0"
