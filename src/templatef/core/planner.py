"""
清理规划

扫描项目树并按 保留 → 敏感 → 删除 的优先级计算删除动作，
再与占位符替换结果一起组装成不可变的 Plan。规划过程不修改文件系统。
"""
import json
import os
from dataclasses import replace
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from templatef.config import TEMPLATE_METADATA_FILENAME, UNDO_LOG_FILENAME
from .errors import NotFoundError
from .fsutils import read_text, to_rel_posix
from .models import (
    ACTION_CREATE,
    ACTION_MODIFY,
    ACTION_REMOVE,
    CleanupRule,
    Plan,
    PlanAction,
    ProjectTree,
    RuleTable,
)
from .placeholder import PlaceholderSubstitutor, SubstitutionContext, collect_metadata, expand_targets
from .rules import validate_rule_table


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """判断相对路径是否匹配模式

    - 以 / 结尾：目录前缀，匹配该目录本身及其下所有路径
    - 不含 /：匹配任意深度的文件名
    - 含 /：匹配整个相对路径
    """
    pattern = pattern.replace("\\", "/")
    if pattern.endswith("/"):
        prefix = pattern.rstrip("/")
        return rel_path == prefix or rel_path.startswith(prefix + "/")
    if "/" in pattern:
        return fnmatchcase(rel_path, pattern)
    return fnmatchcase(rel_path.rsplit("/", 1)[-1], pattern)


class CleanupPlanner:
    """清理规划器"""

    def __init__(self, rule_table: RuleTable):
        validate_rule_table(rule_table)
        self.rule_table = rule_table

    def is_preserved(self, rel_path: str) -> bool:
        return any(matches_pattern(rel_path, p) for p in self.rule_table.preserve)

    @staticmethod
    def _match_rule(rel_path: str, is_dir: bool, rules: Iterable[CleanupRule]) -> Optional[CleanupRule]:
        for rule in rules:
            if rule.type == "file" and is_dir:
                continue
            if rule.type == "dir" and not is_dir:
                continue
            if matches_pattern(rel_path, rule.pattern):
                return rule
        return None

    def _removal_rule(self, rel_path: str, is_dir: bool) -> Optional[CleanupRule]:
        if self.is_preserved(rel_path):
            return None
        return (self._match_rule(rel_path, is_dir, self.rule_table.sensitive)
                or self._match_rule(rel_path, is_dir, self.rule_table.remove))

    def shielded_by(self, rel_dir: str) -> Optional[str]:
        """返回落在该目录之内的显式保留模式（没有则为 None）"""
        for pattern in self.rule_table.preserve:
            norm = pattern.replace("\\", "/").rstrip("/")
            if norm.startswith(rel_dir + "/"):
                return pattern
        return None

    def scan(self, root: Path) -> ProjectTree:
        """遍历项目树，不进入将被整体删除的目录"""
        root = Path(root)
        if not root.is_dir():
            raise NotFoundError(root, "项目目录")
        tree = ProjectTree(root=root)

        for dirpath, dirnames, filenames in os.walk(root, onerror=self._log_walk_error):
            rel_dir = to_rel_posix(root, Path(dirpath))
            keep = []
            for name in sorted(dirnames):
                rel = name if rel_dir == "." else f"{rel_dir}/{name}"
                if os.path.islink(os.path.join(dirpath, name)):
                    # 目录符号链接按文件处理，不跟随
                    tree.files.append(rel)
                    continue
                tree.add_dir(rel)
                if self._removal_rule(rel, True) is None or self.shielded_by(rel):
                    keep.append(name)
            dirnames[:] = keep
            for name in sorted(filenames):
                rel = name if rel_dir == "." else f"{rel_dir}/{name}"
                if rel == UNDO_LOG_FILENAME:
                    continue
                tree.files.append(rel)
        return tree

    def plan(self, tree: ProjectTree) -> Tuple[List[PlanAction], List[str]]:
        """计算删除动作

        返回:
            (按路径排序的删除动作, 提示信息)
        """
        actions: List[PlanAction] = []
        advisories: List[str] = []
        queued_dirs: List[str] = []

        for rel in tree.all_paths():
            if any(rel.startswith(d + "/") for d in queued_dirs):
                continue
            is_dir = tree.is_dir(rel)
            rule = self._removal_rule(rel, is_dir)
            if rule is None:
                continue

            if is_dir:
                shield = self.shielded_by(rel)
                if shield:
                    advisories.append(f"目录 {rel} 匹配清理规则 '{rule.pattern}'，但包含受保护的路径 {shield}，已保留")
                    continue
                queued_dirs.append(rel)

            if rule.warning:
                advisories.append(f"⚠️ {rel}: {rule.warning}")
            actions.append(PlanAction(
                type=ACTION_REMOVE,
                path=rel,
                kind="dir" if is_dir else "file",
                reason=rule.description or f"匹配清理规则 {rule.pattern}",
                warning=rule.warning,
                regeneration_command=rule.regeneration_command,
            ))
        return actions, advisories

    @staticmethod
    def _log_walk_error(error: OSError) -> None:
        logger.warning(f"⚠️ 无法访问目录 {error.filename}: {error}")


def template_metadata(project_type: str, placeholder_map: dict) -> str:
    """template.json 的内容；不含时间戳，保证同一棵树的计划完全一致"""
    data = {
        'name': next((t for t in placeholder_map if "PROJECT_NAME" in t), None),
        'projectType': project_type,
        'placeholders': sorted(placeholder_map),
        'generatedBy': 'templatef',
    }
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def build_plan(
    root: Path,
    project_type: str,
    rule_table: RuleTable,
    ctx: SubstitutionContext,
    substitutor: Optional[PlaceholderSubstitutor] = None,
) -> Plan:
    """组装转换计划（dry-run 模式）

    参数:
        root: 项目根目录
        project_type: 项目类型
        rule_table: 该类型的规则表
        ctx: 占位符上下文；metadata 为空时自动从根目录收集
        substitutor: 可注入的替换器
    返回:
        Plan
    """
    root = Path(root).resolve()
    planner = CleanupPlanner(rule_table)
    tree = planner.scan(root)

    ctx = replace(
        ctx,
        project_dir_name=ctx.project_dir_name or root.name,
        metadata=ctx.metadata or collect_metadata(root, rule_table),
    )

    substitutor = substitutor or PlaceholderSubstitutor({project_type: rule_table})
    placeholder_map = substitutor.resolve(project_type, ctx)

    removals, advisories = planner.plan(tree)
    removed = {a.path for a in removals}
    removed_dirs = [a.path for a in removals if a.kind == "dir"]

    def is_removed(rel: str) -> bool:
        return rel in removed or any(rel.startswith(d + "/") for d in removed_dirs)

    targets = [t for t in expand_targets(root, rule_table.target_files) if not is_removed(t)]
    substitution = substitutor.apply(placeholder_map, targets, root, dry_run=True)

    modifications = [
        PlanAction(
            type=ACTION_MODIFY,
            path=rel,
            content=substitution.contents[rel],
            original_content=substitution.originals[rel],
            reason="占位符替换",
            replacements=substitution.per_file[rel],
        )
        for rel in targets if rel in substitution.contents
    ]

    creations = []
    metadata_content = template_metadata(project_type, placeholder_map)
    metadata_path = root / TEMPLATE_METADATA_FILENAME
    existing = read_text(metadata_path) if metadata_path.is_file() else None
    if existing != metadata_content:
        creations.append(PlanAction(
            type=ACTION_CREATE,
            path=TEMPLATE_METADATA_FILENAME,
            content=metadata_content,
            original_content=existing,
            reason="模板元数据",
        ))

    logger.debug(f"计划: 修改 {len(modifications)}，删除 {len(removals)}，创建 {len(creations)}")
    return Plan(
        project_root=str(root),
        project_type=project_type,
        actions=tuple(modifications + removals + creations),
        placeholder_map=placeholder_map,
        advisories=tuple(advisories),
        placeholder_format=ctx.placeholder_format,
    )
