"""
撤销日志存储

负责 .template-undo.json 的原子写入、读取和校验。
校验顺序：JSON 结构 → 必需字段 → 版本兼容性 → 字段类型。
"""
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from loguru import logger

from templatef.config import SCHEMA_VERSION, UNDO_LOG_FILENAME
from .errors import CorruptedLogError, FileIOError, IncompatibleVersionError, NotFoundError
from .fsutils import write_text_atomic
from .models import ENCODING_BASE64, ENCODING_UTF8, OPERATION_KINDS, UndoLog

REQUIRED_FIELDS = ('version', 'originalValues', 'fileOperations')


def parse_version(version: str) -> Tuple[int, int, int]:
    """解析 MAJOR.MINOR.PATCH，缺省段按 0 处理"""
    parts = str(version).strip().lstrip("v").split("-", 1)[0].split(".")
    if not parts or len(parts) > 3:
        raise ValueError(f"无效的版本号: {version}")
    numbers = [int(p) for p in parts]
    while len(numbers) < 3:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


def default_log_path(root: Union[str, Path]) -> Path:
    return Path(root) / UNDO_LOG_FILENAME


class UndoLogStore:
    """撤销日志读写"""

    def __init__(self, current_version: str = SCHEMA_VERSION):
        self.current_version = current_version

    def is_compatible(self, version: str) -> bool:
        """主版本相同且不高于当前版本才兼容"""
        try:
            log_version = parse_version(version)
            current = parse_version(self.current_version)
        except ValueError:
            return False
        return log_version[0] == current[0] and log_version <= current

    def write(self, undo_log: UndoLog, path: Union[str, Path]) -> Path:
        path = Path(path)
        content = json.dumps(undo_log.to_dict(), indent=2, ensure_ascii=False) + "\n"
        write_text_atomic(path, content)
        logger.info(f"📝 撤销日志已写入: {path}")
        return path

    def read(self, path: Union[str, Path]) -> UndoLog:
        """读取并校验撤销日志

        Raises:
            NotFoundError: 文件不存在
            CorruptedLogError: 内容不是合法的撤销日志
            IncompatibleVersionError: 版本不兼容
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(path, "撤销日志")
        try:
            text = path.read_text(encoding='utf-8')
        except UnicodeDecodeError as e:
            raise CorruptedLogError(f"撤销日志不是 UTF-8 文本: {path}", cause=e) from e
        except OSError as e:
            raise FileIOError(path, e, action="读取") from e

        if not text.strip():
            raise CorruptedLogError(f"撤销日志为空: {path}", details={'path': str(path)})
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptedLogError(f"撤销日志不是合法的 JSON: {e}", details={'path': str(path)}, cause=e) from e
        return self.validate(data)

    def validate(self, data: Any) -> UndoLog:
        if not isinstance(data, dict):
            raise CorruptedLogError("撤销日志必须是 JSON 对象")
        missing = [key for key in REQUIRED_FIELDS if key not in data]
        if missing:
            raise CorruptedLogError(f"撤销日志缺少必需字段: {', '.join(missing)}", details={'missing': missing})

        version = data['version']
        if not isinstance(version, str):
            raise CorruptedLogError("version 必须是字符串")
        if not self.is_compatible(version):
            raise IncompatibleVersionError(version, self.current_version)

        self._validate_fields(data)
        return UndoLog.from_dict(data)

    @staticmethod
    def _validate_fields(data: Dict[str, Any]) -> None:
        values = data['originalValues']
        if not isinstance(values, dict):
            raise CorruptedLogError("originalValues 必须是对象")
        for token, value in values.items():
            if not isinstance(value, str):
                raise CorruptedLogError(f"originalValues[{token}] 必须是字符串")

        operations = data['fileOperations']
        if not isinstance(operations, list):
            raise CorruptedLogError("fileOperations 必须是数组")
        for index, op in enumerate(operations):
            where = f"fileOperations[{index}]"
            if not isinstance(op, dict):
                raise CorruptedLogError(f"{where} 必须是对象")
            if not isinstance(op.get('path'), str) or not op['path']:
                raise CorruptedLogError(f"{where}.path 必须是非空字符串")
            if op.get('kind') not in OPERATION_KINDS:
                raise CorruptedLogError(f"{where}.kind 无效: {op.get('kind')!r}")
            for key in ('originalContent', 'regenerationCommand'):
                if op.get(key) is not None and not isinstance(op[key], str):
                    raise CorruptedLogError(f"{where}.{key} 必须是字符串")
            if op.get('encoding', ENCODING_UTF8) not in (ENCODING_UTF8, ENCODING_BASE64):
                raise CorruptedLogError(f"{where}.encoding 无效: {op.get('encoding')!r}")
            manifest = op.get('manifest')
            if manifest is not None and (not isinstance(manifest, list)
                                         or not all(isinstance(m, str) for m in manifest)):
                raise CorruptedLogError(f"{where}.manifest 必须是字符串数组")

        for key in ('timestamp', 'projectType'):
            if key in data and not isinstance(data[key], str):
                raise CorruptedLogError(f"{key} 必须是字符串")
        for key in ('metadata', 'sanitizationMap', 'sanitizationReport'):
            if data.get(key) is not None and not isinstance(data[key], dict):
                raise CorruptedLogError(f"{key} 必须是对象")
        if 'sanitized' in data and not isinstance(data['sanitized'], bool):
            raise CorruptedLogError("sanitized 必须是布尔值")

    @staticmethod
    def summary(undo_log: UndoLog) -> Dict[str, Any]:
        """撤销日志概要"""
        kinds = Counter(op.kind for op in undo_log.file_operations)
        return {
            'version': undo_log.version,
            'timestamp': undo_log.timestamp,
            'projectType': undo_log.project_type,
            'placeholders': len(undo_log.original_values),
            'operations': len(undo_log.file_operations),
            'byKind': {kind: kinds.get(kind, 0) for kind in OPERATION_KINDS},
            'regenerationCommands': sorted({op.regeneration_command for op in undo_log.file_operations
                                            if op.regeneration_command}),
            'sanitized': undo_log.sanitized,
        }

    @staticmethod
    def delete(path: Union[str, Path]) -> Optional[Path]:
        path = Path(path)
        if not path.exists():
            return None
        try:
            path.unlink()
        except OSError as e:
            raise FileIOError(path, e, action="删除") from e
        logger.info(f"🗑️ 撤销日志已删除: {path}")
        return path
