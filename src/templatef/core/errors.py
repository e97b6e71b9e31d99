"""
异常体系

所有 templatef 异常都继承自 TemplatefError，携带可读消息、结构化 details
以及可选的原始异常 cause。
"""
from pathlib import Path
from typing import Any, Dict, Optional, Union


class TemplatefError(Exception):
    """templatef 基础异常

    Attributes:
        details: 结构化的附加信息（路径、字段、版本等）
        cause: 触发该异常的原始异常
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause


class ConfigurationError(TemplatefError):
    """规则表无效或必需占位符无法解析"""


class PathTraversalError(TemplatefError):
    """模式或操作路径越出项目根目录"""

    def __init__(self, path: Union[str, Path], root: Union[str, Path, None] = None) -> None:
        where = f"（项目根目录: {root}）" if root is not None else ""
        super().__init__(
            f"路径越出项目根目录: {path}{where}",
            details={'path': str(path), 'root': str(root) if root is not None else None},
        )
        self.path = str(path)


class FileIOError(TemplatefError):
    """读/写/权限失败，携带具体路径和底层原因"""

    def __init__(self, path: Union[str, Path], cause: BaseException, action: str = "") -> None:
        verb = f"{action} " if action else ""
        super().__init__(
            f"{verb}{path} 失败: {cause}",
            details={'path': str(path), 'action': action},
            cause=cause,
        )
        self.path = str(path)


class CorruptedLogError(TemplatefError):
    """撤销日志结构或 JSON 校验失败"""


class IncompatibleVersionError(TemplatefError):
    """撤销日志 schema 版本不兼容"""

    def __init__(self, log_version: str, current_version: str) -> None:
        super().__init__(
            f"撤销日志版本 {log_version} 与当前版本 {current_version} 不兼容",
            details={'logVersion': log_version, 'currentVersion': current_version},
        )
        self.log_version = log_version
        self.current_version = current_version


class NotFoundError(TemplatefError):
    """撤销日志或目标文件不存在"""

    def __init__(self, path: Union[str, Path], what: str = "文件") -> None:
        super().__init__(f"{what}不存在: {path}", details={'path': str(path)})
        self.path = str(path)


class SanitizationConfigError(TemplatefError):
    """自定义脱敏规则格式错误"""
