"""
文件系统辅助函数

所有路径都以项目根目录为基准，写入一律走临时文件 + os.replace。
"""
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterator

from loguru import logger

from .errors import FileIOError, PathTraversalError


def normalize_rel_path(rel_path: str) -> str:
    """统一成不带 ./ 前缀和尾部斜杠的 POSIX 相对路径"""
    rel = rel_path.replace("\\", "/").strip()
    while rel.startswith("./"):
        rel = rel[2:]
    return rel.rstrip("/")


def is_unsafe_rel_path(rel_path: str) -> bool:
    """绝对路径、盘符路径或包含 .. 的路径都视为不安全"""
    rel = rel_path.replace("\\", "/")
    if rel.startswith("/") or (len(rel) > 1 and rel[1] == ":"):
        return True
    return ".." in PurePosixPath(rel).parts


def resolve_within(root: Path, rel_path: str) -> Path:
    """把相对路径解析到根目录下，越界时抛出 PathTraversalError

    返回的路径本身不解析符号链接，只校验其所在目录确实位于根目录内。
    """
    rel = normalize_rel_path(rel_path or "")
    if not rel or is_unsafe_rel_path(rel):
        raise PathTraversalError(rel_path, root)
    root = Path(root).resolve()
    target = root / rel
    parent = target.parent.resolve()
    if parent != root and root not in parent.parents:
        # 上级目录经由符号链接指向了根目录之外
        raise PathTraversalError(rel_path, root)
    return target


def read_text(path: Path) -> str:
    try:
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return f.read()
    except OSError as e:
        raise FileIOError(path, e, action="读取") from e


def read_bytes(path: Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise FileIOError(path, e, action="读取") from e


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """先写同目录下的临时文件再替换目标，避免留下半截文件"""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise FileIOError(path, e, action="写入") from e


def write_text_atomic(path: Path, content: str) -> None:
    write_bytes_atomic(path, content.encode('utf-8'))


def to_rel_posix(root: Path, path: Path) -> str:
    return Path(os.path.relpath(path, root)).as_posix()


def iter_files(root: Path, skip_dirs=()) -> Iterator[Path]:
    """递归列出根目录下的所有文件（不跟随目录符号链接）"""
    for dirpath, dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
        for name in sorted(filenames):
            yield Path(dirpath) / name


def _log_walk_error(error: OSError) -> None:
    logger.warning(f"⚠️ 无法访问目录 {error.filename}: {error}")
