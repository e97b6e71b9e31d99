"""templatef 数据模型"""

import copy
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

# 计划动作类型
ACTION_CREATE = "create"
ACTION_REMOVE = "remove"
ACTION_MODIFY = "modify"

# 撤销日志中的操作类型
KIND_MODIFIED = "modified"
KIND_REMOVED = "removed"
KIND_REMOVED_DIR = "removed-dir"
KIND_CREATED = "created"
OPERATION_KINDS = (KIND_MODIFIED, KIND_REMOVED, KIND_REMOVED_DIR, KIND_CREATED)

ENCODING_UTF8 = "utf-8"
ENCODING_BASE64 = "base64"

MODE_DRY_RUN = "dry-run"
MODE_APPLY = "apply"


@dataclass(frozen=True)
class PlaceholderRule:
    """占位符规则"""
    name: str
    sources: Tuple[str, ...] = ()  # "文件:点分键" 或 "@dirname"
    fallback: Optional[str] = None
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class CleanupRule:
    """清理规则（删除或敏感文件）"""
    pattern: str
    type: str = "both"  # file / dir / both
    category: str = "cache"
    description: str = ""
    regeneration_command: Optional[str] = None
    warning: Optional[str] = None  # 仅敏感规则设置


@dataclass(frozen=True)
class RuleTable:
    """某个项目类型的全部静态规则"""
    project_type: str
    placeholders: Tuple[PlaceholderRule, ...] = ()
    target_files: Tuple[str, ...] = ()
    remove: Tuple[CleanupRule, ...] = ()
    sensitive: Tuple[CleanupRule, ...] = ()
    preserve: Tuple[str, ...] = ()


@dataclass
class ProjectTree:
    """扫描得到的项目树，路径均为相对根目录的 POSIX 形式"""
    root: Path
    files: List[str] = field(default_factory=list)
    dirs: List[str] = field(default_factory=list)

    def __post_init__(self):
        self._dir_set: Set[str] = set(self.dirs)

    def is_dir(self, rel_path: str) -> bool:
        return rel_path in self._dir_set

    def add_dir(self, rel_path: str) -> None:
        self.dirs.append(rel_path)
        self._dir_set.add(rel_path)

    def all_paths(self) -> List[str]:
        return sorted(self.files + self.dirs)


@dataclass(frozen=True)
class PlanAction:
    """计划中的单个动作"""
    type: str  # create / remove / modify
    path: str
    kind: str = "file"  # file / dir
    content: Optional[str] = None
    original_content: Optional[str] = None
    reason: str = ""
    warning: Optional[str] = None
    replacements: int = 0
    regeneration_command: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'path': self.path,
            'kind': self.kind,
            'reason': self.reason,
        }
        if self.content is not None:
            data['content'] = self.content
        if self.original_content is not None:
            data['originalContent'] = self.original_content
        if self.warning:
            data['warning'] = self.warning
        if self.replacements:
            data['replacements'] = self.replacements
        if self.regeneration_command:
            data['regenerationCommand'] = self.regeneration_command
        return data


@dataclass(frozen=True)
class Plan:
    """不可变的转换计划

    计划总是以 dry-run 模式产生，执行前需要通过 with_mode('apply') 取得副本。
    """
    project_root: str
    project_type: str
    actions: Tuple[PlanAction, ...] = ()
    placeholder_map: Dict[str, str] = field(default_factory=dict)
    mode: str = MODE_DRY_RUN
    advisories: Tuple[str, ...] = ()
    placeholder_format: str = "{{NAME}}"

    def with_mode(self, mode: str) -> "Plan":
        if mode not in (MODE_DRY_RUN, MODE_APPLY):
            raise ValueError(f"未知的计划模式: {mode}")
        return replace(self, mode=mode, placeholder_map=dict(self.placeholder_map))

    def actions_of(self, action_type: str) -> List[PlanAction]:
        return [a for a in self.actions if a.type == action_type]

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            'projectRoot': self.project_root,
            'projectType': self.project_type,
            'mode': self.mode,
            'placeholderFormat': self.placeholder_format,
            'placeholderMap': dict(self.placeholder_map),
            'actions': [a.to_dict() for a in self.actions],
            'advisories': list(self.advisories),
        }


@dataclass
class FileOperation:
    """撤销日志中的单条文件操作"""
    path: str
    kind: str
    original_content: Optional[str] = None
    regeneration_command: Optional[str] = None
    encoding: str = ENCODING_UTF8
    manifest: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'path': self.path, 'kind': self.kind}
        if self.original_content is not None:
            data['originalContent'] = self.original_content
        if self.regeneration_command is not None:
            data['regenerationCommand'] = self.regeneration_command
        if self.encoding != ENCODING_UTF8:
            data['encoding'] = self.encoding
        if self.manifest is not None:
            data['manifest'] = list(self.manifest)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileOperation":
        manifest = data.get('manifest')
        return cls(
            path=data['path'],
            kind=data['kind'],
            original_content=data.get('originalContent'),
            regeneration_command=data.get('regenerationCommand'),
            encoding=data.get('encoding', ENCODING_UTF8),
            manifest=list(manifest) if manifest is not None else None,
        )


@dataclass
class UndoLog:
    """撤销日志

    按值语义使用：脱敏等操作总是返回新对象，不修改原对象。
    """
    version: str
    timestamp: str
    project_type: str
    original_values: Dict[str, str] = field(default_factory=dict)
    file_operations: List[FileOperation] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    sanitized: bool = False
    sanitization_map: Optional[Dict[str, Any]] = None
    sanitization_report: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'version': self.version,
            'timestamp': self.timestamp,
            'projectType': self.project_type,
            'originalValues': dict(self.original_values),
            'fileOperations': [op.to_dict() for op in self.file_operations],
            'metadata': copy.deepcopy(self.metadata),
        }
        if self.sanitized:
            data['sanitized'] = True
        if self.sanitization_map is not None:
            data['sanitizationMap'] = copy.deepcopy(self.sanitization_map)
        if self.sanitization_report is not None:
            data['sanitizationReport'] = copy.deepcopy(self.sanitization_report)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UndoLog":
        return cls(
            version=data['version'],
            timestamp=data.get('timestamp', ''),
            project_type=data.get('projectType', ''),
            original_values=dict(data['originalValues']),
            file_operations=[FileOperation.from_dict(op) for op in data['fileOperations']],
            metadata=copy.deepcopy(data.get('metadata') or {}),
            sanitized=bool(data.get('sanitized', False)),
            sanitization_map=copy.deepcopy(data.get('sanitizationMap')),
            sanitization_report=copy.deepcopy(data.get('sanitizationReport')),
        )

    def copy(self) -> "UndoLog":
        return UndoLog.from_dict(self.to_dict())

    @property
    def placeholder_format(self) -> str:
        return self.metadata.get('placeholderFormat', "{{NAME}}")


@dataclass
class ActionFailure:
    """执行失败的动作"""
    path: str
    action: str
    cause: str


@dataclass
class ExecutionResult:
    """执行结果"""
    undo_log: UndoLog
    completed: List[str] = field(default_factory=list)
    failures: List[ActionFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


@dataclass
class SubstitutionResult:
    """占位符替换结果"""
    files_processed: int = 0
    replacements: int = 0
    per_file: Dict[str, int] = field(default_factory=dict)
    contents: Dict[str, str] = field(default_factory=dict)  # 有替换的文件的新内容
    originals: Dict[str, str] = field(default_factory=dict)  # 有替换的文件的原内容


@dataclass
class RestoreResult:
    """恢复结果"""
    dry_run: bool = False
    restored: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    recreated_dirs: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    substituted: Dict[str, int] = field(default_factory=dict)
    unresolved_tokens: Dict[str, List[str]] = field(default_factory=dict)
    regeneration_commands: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def changed_count(self) -> int:
        return len(self.restored) + len(self.deleted) + len(self.recreated_dirs) + len(self.substituted)


@dataclass
class ConversionResult:
    """一次完整转换（执行 + 写日志）的结果"""
    execution: ExecutionResult
    log_path: Path
    sanitization_report: Optional[Dict[str, Any]] = None
    sanitization_map: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.execution.success
