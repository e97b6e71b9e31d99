"""
计划执行器

按计划顺序执行动作，同时记录撤销日志。单个动作失败不会中止整个计划，
失败会被收集到 ExecutionResult.failures 中；撤销日志只包含已完成的操作。
"""
import base64
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from loguru import logger

from templatef import __version__
from templatef.config import SCHEMA_VERSION
from .errors import ConfigurationError, FileIOError, TemplatefError
from .fsutils import read_bytes, read_text, resolve_within, to_rel_posix, write_text_atomic
from .models import (
    ACTION_CREATE,
    ACTION_MODIFY,
    ACTION_REMOVE,
    ENCODING_BASE64,
    ENCODING_UTF8,
    KIND_CREATED,
    KIND_MODIFIED,
    KIND_REMOVED,
    KIND_REMOVED_DIR,
    MODE_APPLY,
    ActionFailure,
    ExecutionResult,
    FileOperation,
    Plan,
    PlanAction,
    UndoLog,
)


class StaleContentError(RuntimeError):
    """文件内容在规划之后被改动"""


class PartialRemovalError(FileIOError):
    """目录只删除了一部分；operation 记录了删除前的清单"""

    def __init__(self, path, cause, operation: FileOperation):
        super().__init__(path, cause, action="删除目录")
        self.operation = operation


def encode_content(data: bytes):
    """返回 (内容, 编码)，无法按 UTF-8 解码的内容以 base64 保存"""
    try:
        return data.decode('utf-8'), ENCODING_UTF8
    except UnicodeDecodeError:
        return base64.b64encode(data).decode('ascii'), ENCODING_BASE64


def decode_content(content: str, encoding: str) -> bytes:
    if encoding == ENCODING_BASE64:
        return base64.b64decode(content)
    return content.encode('utf-8')


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Executor:
    """计划执行器"""

    def __init__(self, tool_version: str = __version__):
        self.tool_version = tool_version

    def execute(self, plan: Plan) -> ExecutionResult:
        """执行 apply 模式的计划

        参数:
            plan: 模式必须为 apply
        返回:
            ExecutionResult，其中 undo_log 只记录成功完成的操作
        """
        if plan.mode != MODE_APPLY:
            raise ConfigurationError(f"只能执行 apply 模式的计划，当前模式: {plan.mode}")

        root = Path(plan.project_root).resolve()
        operations: List[FileOperation] = []
        completed: List[str] = []
        failures: List[ActionFailure] = []

        for action in plan.actions:
            try:
                target = resolve_within(root, action.path)
                operation = self._run(action, target, root)
            except PartialRemovalError as e:
                # 已删除的部分仍需记录，恢复时才能重建目录
                logger.error(f"❌ {action.type} {action.path} 只完成了一部分: {e.message}")
                failures.append(ActionFailure(action.path, action.type, e.message))
                operations.append(e.operation)
                continue
            except TemplatefError as e:
                logger.error(f"❌ {action.type} {action.path} 失败: {e.message}")
                failures.append(ActionFailure(action.path, action.type, e.message))
                continue
            except UnicodeDecodeError as e:
                logger.error(f"❌ {action.type} {action.path} 失败: 不是 UTF-8 文本")
                failures.append(ActionFailure(action.path, action.type, f"不是 UTF-8 文本: {e}"))
                continue
            if operation is None:
                continue
            operations.append(operation)
            completed.append(action.path)

        undo_log = UndoLog(
            version=SCHEMA_VERSION,
            timestamp=utc_timestamp(),
            project_type=plan.project_type,
            original_values=dict(plan.placeholder_map),
            file_operations=operations,
            metadata={
                'tool': 'templatef',
                'toolVersion': self.tool_version,
                'placeholderFormat': plan.placeholder_format,
                'projectRoot': str(root),
                'projectName': root.name,
            },
        )
        logger.info(f"✅ 执行完成: 成功 {len(completed)}，失败 {len(failures)}")
        return ExecutionResult(undo_log=undo_log, completed=completed, failures=failures)

    def _run(self, action: PlanAction, target: Path, root: Path) -> Optional[FileOperation]:
        if action.type == ACTION_MODIFY:
            return self._modify(action, target)
        if action.type == ACTION_REMOVE:
            return self._remove(action, target, root)
        if action.type == ACTION_CREATE:
            return self._create(action, target)
        raise ConfigurationError(f"未知的动作类型: {action.type}")

    def _modify(self, action: PlanAction, target: Path) -> FileOperation:
        if not target.is_file():
            raise FileIOError(target, FileNotFoundError("文件不存在"), action="修改")
        current = read_text(target)
        if action.original_content is not None and current != action.original_content:
            raise FileIOError(target, StaleContentError("文件在规划之后被修改过，请重新生成计划"), action="修改")
        write_text_atomic(target, action.content or "")
        logger.info(f"✏️ 已修改: {action.path} ({action.replacements} 处替换)")
        return FileOperation(path=action.path, kind=KIND_MODIFIED, original_content=current)

    def _remove(self, action: PlanAction, target: Path, root: Path) -> Optional[FileOperation]:
        if not os.path.lexists(target):
            logger.warning(f"⚠️ 待删除的路径已不存在，跳过: {action.path}")
            return None

        if target.is_dir() and not target.is_symlink():
            manifest = sorted(
                to_rel_posix(target, Path(dirpath) / name)
                for dirpath, _, filenames in os.walk(target)
                for name in filenames
            )
            operation = FileOperation(
                path=action.path,
                kind=KIND_REMOVED_DIR,
                regeneration_command=action.regeneration_command,
                manifest=manifest,
            )
            try:
                shutil.rmtree(target)
            except OSError as e:
                raise PartialRemovalError(target, e, operation) from e
            logger.info(f"🗑️ 已删除目录: {action.path} ({len(manifest)} 个文件)")
            return operation

        content, encoding = encode_content(read_bytes(target))
        try:
            target.unlink()
        except OSError as e:
            raise FileIOError(target, e, action="删除") from e
        logger.info(f"🗑️ 已删除: {action.path}")
        return FileOperation(
            path=action.path,
            kind=KIND_REMOVED,
            original_content=content,
            regeneration_command=action.regeneration_command,
            encoding=encoding,
        )

    def _create(self, action: PlanAction, target: Path) -> FileOperation:
        previous = None
        if target.exists():
            previous = read_text(target)
        write_text_atomic(target, action.content or "")
        if previous is not None:
            logger.info(f"✏️ 已覆盖: {action.path}")
            return FileOperation(path=action.path, kind=KIND_MODIFIED, original_content=previous)
        logger.info(f"📄 已创建: {action.path}")
        return FileOperation(path=action.path, kind=KIND_CREATED)
