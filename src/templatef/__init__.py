"""
模板转换工具
把具体项目转换为可复用的模板，并记录可回放的撤销日志；
支持全量或选择性恢复，以及在共享前对撤销日志脱敏
"""
__version__ = "0.1.0"

from .core.errors import (
    ConfigurationError,
    CorruptedLogError,
    FileIOError,
    IncompatibleVersionError,
    NotFoundError,
    PathTraversalError,
    SanitizationConfigError,
    TemplatefError,
)
from .core.models import Plan, PlanAction, RestoreResult, UndoLog, FileOperation
from .core.sanitizer import Sanitizer
from .core.service import TemplateService

__all__ = [
    '__version__',
    # 服务
    'TemplateService',
    'Sanitizer',
    # 数据模型
    'Plan',
    'PlanAction',
    'UndoLog',
    'FileOperation',
    'RestoreResult',
    # 异常
    'TemplatefError',
    'ConfigurationError',
    'PathTraversalError',
    'FileIOError',
    'CorruptedLogError',
    'IncompatibleVersionError',
    'NotFoundError',
    'SanitizationConfigError',
]
