"""
恢复引擎

第一遍按日志顺序回放文件操作，第二遍把令牌替换回具体值。
两遍都受选择范围限制；写入前先比较内容，因此重复执行是安全的。
"""
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger

from templatef.config import RESTORE_DEFAULTS_FILENAME, SKIP_SCAN_DIRS, UNDO_LOG_FILENAME
from .errors import FileIOError, NotFoundError, PathTraversalError
from .executor import decode_content
from .fsutils import iter_files, normalize_rel_path, read_bytes, resolve_within, to_rel_posix, write_bytes_atomic
from .models import (
    KIND_CREATED,
    KIND_MODIFIED,
    KIND_REMOVED,
    KIND_REMOVED_DIR,
    FileOperation,
    RestoreResult,
    UndoLog,
)
from .placeholder import substitute_literals, token_pattern
from .sanitizer import contains_sanitized_token

_SKIP_FILES = {UNDO_LOG_FILENAME, RESTORE_DEFAULTS_FILENAME}


def _in_selection(rel_path: str, selection: Iterable[str]) -> bool:
    return any(rel_path == sel or rel_path.startswith(sel + "/") for sel in selection)


class RestorationEngine:
    """恢复引擎"""

    def restore(
        self,
        undo_log: UndoLog,
        root: Path,
        selection: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        values: Optional[Dict[str, str]] = None,
    ) -> RestoreResult:
        """根据撤销日志恢复项目

        参数:
            undo_log: 撤销日志
            root: 项目根目录
            selection: 只恢复这些路径（精确路径或目录前缀），None 表示全部
            dry_run: 只计算，不写入
            values: 覆盖日志中的令牌值，用于补全被脱敏的值
        返回:
            RestoreResult
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise NotFoundError(root, "项目目录")

        result = RestoreResult(dry_run=dry_run)
        selected = None
        if selection is not None:
            selected = [normalize_rel_path(s) for s in selection if normalize_rel_path(s)]

        token_values = self._token_values(undo_log, values, result)
        known_tokens = set(undo_log.original_values) | set(values or {})

        # 第一遍：回放文件操作
        handled: Set[str] = set()
        for op in undo_log.file_operations:
            if selected is not None and not _in_selection(op.path, selected):
                continue
            if contains_sanitized_token(op.path) or any(contains_sanitized_token(m) for m in op.manifest or ()):
                self._problem(result, f"{op.path} 的路径已被脱敏，无法恢复该操作", selected is not None)
                handled.add(op.path)
                continue
            try:
                target = resolve_within(root, op.path)
            except PathTraversalError as e:
                result.errors.append(e.message)
                continue
            try:
                self._replay(op, target, result, dry_run, selective=selected is not None)
            except FileIOError as e:
                self._problem(result, e.message, selected is not None)
            handled.add(op.path)

        # 第二遍：把令牌替换回具体值
        candidates = self._candidates(root, selected, handled, result)
        pattern = token_pattern(undo_log.placeholder_format)
        for rel in candidates:
            if rel in handled:
                continue
            try:
                self._substitute(root, rel, token_values, known_tokens, pattern, result, dry_run)
            except FileIOError as e:
                self._problem(result, e.message, selected is not None)

        verb = "预计" if dry_run else "已"
        logger.info(
            f"{verb}恢复 {len(result.restored)} 个文件，删除 {len(result.deleted)} 个，"
            f"重建目录 {len(result.recreated_dirs)} 个，回填 {len(result.substituted)} 个文件"
        )
        return result

    @staticmethod
    def _problem(result: RestoreResult, message: str, selective: bool) -> None:
        if selective:
            logger.error(f"❌ {message}")
            result.errors.append(message)
        else:
            logger.warning(f"⚠️ {message}")
            result.warnings.append(message)

    @staticmethod
    def _token_values(undo_log: UndoLog, values: Optional[Dict[str, str]], result: RestoreResult) -> Dict[str, str]:
        token_values = dict(undo_log.original_values)
        token_values.update(values or {})
        usable = {}
        for token, value in token_values.items():
            if contains_sanitized_token(value):
                result.warnings.append(f"令牌 {token} 的值已被脱敏，保持令牌不变（可通过 .restore-defaults.json 提供）")
                continue
            usable[token] = value
        return usable

    @staticmethod
    def _write(target: Path, data: bytes, dry_run: bool) -> None:
        if not dry_run:
            write_bytes_atomic(target, data)

    def _replay(self, op: FileOperation, target: Path, result: RestoreResult, dry_run: bool, selective: bool) -> None:
        if op.kind in (KIND_MODIFIED, KIND_REMOVED):
            if op.original_content is None:
                self._problem(result, f"{op.path} 没有记录原始内容，无法恢复", selective)
                return
            if contains_sanitized_token(op.original_content):
                result.warnings.append(f"{op.path} 的原始内容包含脱敏占位符，恢复后需要手动补全")
            desired = decode_content(op.original_content, op.encoding)
            if op.kind == KIND_MODIFIED and not target.exists():
                self._problem(result, f"{op.path} 已不存在，跳过恢复", selective)
                return
            if target.is_file() and read_bytes(target) == desired:
                result.unchanged.append(op.path)
                return
            if target.is_dir():
                self._problem(result, f"{op.path} 现在是一个目录，无法写回文件", selective)
                return
            self._write(target, desired, dry_run)
            result.restored.append(op.path)
            logger.debug(f"恢复文件: {op.path}")

        elif op.kind == KIND_CREATED:
            if not target.exists():
                result.unchanged.append(op.path)
                return
            if target.is_dir():
                self._problem(result, f"{op.path} 是目录，不会删除", selective)
                return
            if not dry_run:
                try:
                    target.unlink()
                except OSError as e:
                    raise FileIOError(target, e, action="删除") from e
            result.deleted.append(op.path)
            logger.debug(f"删除生成的文件: {op.path}")

        elif op.kind == KIND_REMOVED_DIR:
            if target.is_dir():
                result.unchanged.append(op.path)
            elif target.exists():
                self._problem(result, f"{op.path} 已被文件占用，无法重建目录", selective)
                return
            else:
                if not dry_run:
                    try:
                        target.mkdir(parents=True, exist_ok=True)
                    except OSError as e:
                        raise FileIOError(target, e, action="创建目录") from e
                result.recreated_dirs.append(op.path)
            if op.regeneration_command and op.regeneration_command not in result.regeneration_commands:
                result.regeneration_commands.append(op.regeneration_command)

    def _candidates(self, root: Path, selected: Optional[List[str]], handled: Set[str],
                    result: RestoreResult) -> List[str]:
        if selected is None:
            return [
                rel for rel in (to_rel_posix(root, p) for p in iter_files(root, SKIP_SCAN_DIRS))
                if rel not in _SKIP_FILES
            ]

        candidates: List[str] = []
        for sel in selected:
            try:
                target = resolve_within(root, sel)
            except PathTraversalError as e:
                result.errors.append(e.message)
                continue
            if target.is_file():
                candidates.append(sel)
            elif target.is_dir():
                candidates.extend(to_rel_posix(root, p) for p in iter_files(target, SKIP_SCAN_DIRS))
            elif not _in_selection_any(handled, sel):
                message = f"选中的路径不存在且日志中没有对应记录: {sel}"
                logger.error(f"❌ {message}")
                result.errors.append(message)
        return [c for c in dict.fromkeys(candidates) if c not in _SKIP_FILES]

    @staticmethod
    def _substitute(root: Path, rel: str, token_values: Dict[str, str], known_tokens: Set[str], pattern,
                    result: RestoreResult, dry_run: bool) -> None:
        target = root / rel
        data = read_bytes(target)
        try:
            content = data.decode('utf-8')
        except UnicodeDecodeError:
            return
        new_content, count = substitute_literals(content, token_values)
        if count:
            if not dry_run:
                write_bytes_atomic(target, new_content.encode('utf-8'))
            result.substituted[rel] = count
            logger.debug(f"回填 {rel}: {count} 处")
        leftovers = sorted({m.group(0) for m in pattern.finditer(new_content)
                            if m.group(0) not in known_tokens and not contains_sanitized_token(m.group(0))})
        if leftovers:
            result.unresolved_tokens[rel] = leftovers
            result.warnings.append(f"{rel} 中有未知令牌: {', '.join(leftovers)}")


def _in_selection_any(paths: Iterable[str], sel: str) -> bool:
    return any(p == sel or p.startswith(sel + "/") for p in paths)
