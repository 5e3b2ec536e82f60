"""
PackFetch 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional

import aiohttp


class PackFetchError(Exception):
    """PackFetch 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(PackFetchError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class APIError(PackFetchError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        if response is not None:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    def _get_default_code(self) -> str:
        return "E200"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class APIRateLimitError(APIError):
    """API 速率限制"""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, context={"retry_after": retry_after}, response=response)
        self.retry_after = retry_after

    def _get_default_code(self) -> str:
        return "E429"


class APIServerError(APIError):
    """API 服务器错误"""

    def _get_default_code(self) -> str:
        return "E500"


class ModLoadingError(PackFetchError):
    """模组元数据加载错误"""

    def _get_default_code(self) -> str:
        return "E210"


class NotAModError(ModLoadingError):
    """项目存在，但不是模组"""

    def _get_default_code(self) -> str:
        return "E211"


class NoFilesError(ModLoadingError):
    """版本下没有任何文件"""

    def _get_default_code(self) -> str:
        return "E212"


class UnsupportedLookupError(ModLoadingError):
    """站点不支持仅凭版本 ID 查询元数据"""

    def _get_default_code(self) -> str:
        return "E213"


class DownloadError(PackFetchError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E301"


class DownloadChecksumError(DownloadError):
    """下载校验错误"""

    def _get_default_code(self) -> str:
        return "E302"


class DownloadFileError(DownloadError):
    """下载文件操作错误"""

    def _get_default_code(self) -> str:
        return "E303"


def _format_failures(failures: Dict[str, Exception]) -> str:
    return "\n".join(f"Mod {key}: {failures[key]}" for key in sorted(failures))


class ModsDownloadError(DownloadError):
    """多个模组下载失败的汇总"""

    def __init__(self, failures: Dict[str, Exception]):
        super().__init__(
            f"{len(failures)} 个模组下载失败",
            context={"failed": sorted(failures)},
        )
        self.failures = failures

    def _get_default_code(self) -> str:
        return "E310"

    def __str__(self) -> str:
        return f"{super().__str__()}\n{_format_failures(self.failures)}"


class ModVerificationError(PackFetchError):
    """单个模组校验失败"""

    def _get_default_code(self) -> str:
        return "E600"


class LoadingError(ModVerificationError):
    """加载模组本身失败"""

    def __init__(self, cause: Exception):
        super().__init__(f"加载模组失败: {cause}", context={"cause": str(cause)})
        self.cause = cause

    def _get_default_code(self) -> str:
        return "E601"


class DistributionDeniedError(ModVerificationError):
    """模组不允许第三方分发"""

    def __init__(self):
        super().__init__("该模组不允许第三方分发，请手动放入 `mods/` 目录")

    def _get_default_code(self) -> str:
        return "E602"


class MinecraftVersionMismatchError(ModVerificationError):
    """Minecraft 版本不匹配"""

    def __init__(self, expected: str, actual: List[str]):
        super().__init__(
            f"期望 Minecraft 版本 {expected}，实际为 {actual}",
            context={"expected": expected, "actual": list(actual)},
        )
        self.expected = expected
        self.actual = list(actual)

    def _get_default_code(self) -> str:
        return "E603"


class MissingRequiredDependenciesError(ModVerificationError):
    """必需依赖未在模组列表中声明"""

    def __init__(self, missing: List[str]):
        super().__init__(
            f"必需依赖未在模组列表中声明: {missing}",
            context={"missing": list(missing)},
        )
        self.missing = list(missing)

    def _get_default_code(self) -> str:
        return "E604"


class DependencyLoadingError(ModVerificationError):
    """查询依赖信息失败"""

    def __init__(self, dependency: Any, cause: Exception):
        super().__init__(
            f"加载依赖 {dependency} 失败: {cause}",
            context={"dependency": str(dependency), "cause": str(cause)},
        )
        self.dependency = dependency
        self.cause = cause

    def _get_default_code(self) -> str:
        return "E605"


class ModsVerificationError(PackFetchError):
    """多个模组校验失败的汇总，按配置键排序输出"""

    def __init__(self, failures: Dict[str, ModVerificationError]):
        super().__init__(
            f"{len(failures)} 个模组校验失败",
            context={"failed": sorted(failures)},
        )
        self.failures = failures

    def _get_default_code(self) -> str:
        return "E610"

    def __str__(self) -> str:
        return f"{super().__str__()}\n{_format_failures(self.failures)}"


__all__ = [
    # 基础异常
    "PackFetchError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # API 异常
    "APIError",
    "APINotFoundError",
    "APIRateLimitError",
    "APIServerError",
    # 加载异常
    "ModLoadingError",
    "NotAModError",
    "NoFilesError",
    "UnsupportedLookupError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "DownloadChecksumError",
    "DownloadFileError",
    "ModsDownloadError",
    # 校验异常
    "ModVerificationError",
    "LoadingError",
    "DistributionDeniedError",
    "MinecraftVersionMismatchError",
    "MissingRequiredDependenciesError",
    "DependencyLoadingError",
    "ModsVerificationError",
]
