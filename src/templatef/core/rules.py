"""
规则表

从 config.py 中的规则组装配出某个项目类型的 RuleTable，
并合并 templatef.toml 中的扩展规则。
"""
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import tomli
from loguru import logger

from templatef.config import (
    CLEANUP_GROUPS,
    PLACEHOLDER_GROUPS,
    PRESERVE_GROUPS,
    PROJECT_CONFIG_FILENAME,
    PROJECT_TYPES,
    SENSITIVE_GROUPS,
)
from .errors import ConfigurationError, PathTraversalError
from .fsutils import is_unsafe_rel_path
from .models import CleanupRule, PlaceholderRule, RuleTable

RULE_TYPES = ("file", "dir", "both")


def list_project_types() -> Dict[str, str]:
    """返回 {类型: 显示名}"""
    return {key: value.get('name', key) for key, value in PROJECT_TYPES.items()}


def check_pattern(pattern: str) -> None:
    """模式必须是相对项目根目录的路径"""
    if is_unsafe_rel_path(pattern):
        raise PathTraversalError(pattern)


def _build_placeholder(data: Dict[str, Any]) -> PlaceholderRule:
    if not isinstance(data, dict) or not data.get('name'):
        raise ConfigurationError(f"占位符规则缺少 name: {data!r}")
    sources = data.get('sources', [])
    if isinstance(sources, str):
        sources = [sources]
    fallback = data.get('fallback')
    return PlaceholderRule(
        name=str(data['name']),
        sources=tuple(str(s) for s in sources),
        fallback=str(fallback) if fallback is not None else None,
        required=bool(data.get('required', False)),
        description=data.get('description', ""),
    )


def _build_cleanup(data: Dict[str, Any], sensitive: bool = False) -> CleanupRule:
    if not isinstance(data, dict) or not data.get('pattern'):
        raise ConfigurationError(f"清理规则缺少 pattern: {data!r}")
    rule_type = data.get('type', 'both')
    if rule_type not in RULE_TYPES:
        raise ConfigurationError(f"清理规则 {data['pattern']} 的 type 无效: {rule_type}")
    warning = data.get('warning')
    if sensitive and not warning:
        warning = "敏感文件，删除前请确认"
    return CleanupRule(
        pattern=str(data['pattern']),
        type=rule_type,
        category=data.get('category', 'sensitive' if sensitive else 'cache'),
        description=data.get('description', ""),
        regeneration_command=data.get('regeneration_command'),
        warning=warning,
    )


def _expand_groups(groups: Dict[str, List[Any]], names: Iterable[str], project_type: str) -> List[Any]:
    items = []
    for name in names:
        if name not in groups:
            raise ConfigurationError(f"项目类型 {project_type} 引用了未知的规则组: {name}")
        items.extend(groups[name])
    return items


def _dedupe_placeholders(rules: List[PlaceholderRule]) -> List[PlaceholderRule]:
    # 同名占位符以后出现的为准（例如配置文件覆盖内置规则）
    by_name: Dict[str, PlaceholderRule] = {}
    for rule in rules:
        by_name.pop(rule.name, None)
        by_name[rule.name] = rule
    return list(by_name.values())


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def get_rule_table(project_type: str, overrides: Optional[Dict[str, Any]] = None) -> RuleTable:
    """装配项目类型的规则表

    参数:
        project_type: 项目类型键，见 config.PROJECT_TYPES
        overrides: templatef.toml 中 [rules.<type>] 节的内容
    返回:
        校验过的 RuleTable
    """
    if project_type not in PROJECT_TYPES:
        known = ", ".join(PROJECT_TYPES)
        raise ConfigurationError(f"未知的项目类型: {project_type}（可选: {known}）",
                                 details={'projectType': project_type})
    type_config = PROJECT_TYPES[project_type]
    overrides = overrides or {}

    placeholders = [_build_placeholder(p) for p in _expand_groups(PLACEHOLDER_GROUPS, type_config['placeholders'], project_type)]
    placeholders += [_build_placeholder(p) for p in overrides.get('placeholders', [])]

    remove = [_build_cleanup(r) for r in _expand_groups(CLEANUP_GROUPS, type_config['cleanup'], project_type)]
    remove += [_build_cleanup(r) for r in overrides.get('remove', [])]

    sensitive = [_build_cleanup(r, sensitive=True) for r in _expand_groups(SENSITIVE_GROUPS, type_config['sensitive'], project_type)]
    sensitive += [_build_cleanup(r, sensitive=True) for r in overrides.get('sensitive', [])]

    preserve = list(_expand_groups(PRESERVE_GROUPS, type_config['preserve'], project_type))
    preserve += list(overrides.get('preserve', []))

    targets = list(type_config['targets']) + list(overrides.get('targets', []))

    table = RuleTable(
        project_type=project_type,
        placeholders=tuple(_dedupe_placeholders(placeholders)),
        target_files=tuple(_dedupe(targets)),
        remove=tuple(remove),
        sensitive=tuple(sensitive),
        preserve=tuple(_dedupe(preserve)),
    )
    validate_rule_table(table)
    return table


def validate_rule_table(table: RuleTable) -> None:
    """校验规则表，发现问题时抛出 ConfigurationError / PathTraversalError"""
    for rule in table.remove + table.sensitive:
        if not rule.pattern.strip():
            raise ConfigurationError("清理规则的 pattern 不能为空")
        check_pattern(rule.pattern)
    for pattern in table.preserve:
        if not str(pattern).strip():
            raise ConfigurationError("保留模式不能为空")
        check_pattern(pattern)
    for target in table.target_files:
        check_pattern(target)
    for rule in table.placeholders:
        if not rule.name.replace("_", "").isalnum():
            raise ConfigurationError(f"占位符名只能包含字母、数字和下划线: {rule.name}")
        if rule.required and not rule.sources and rule.fallback is None:
            logger.debug(f"必需占位符 {rule.name} 只能由用户输入提供")


def load_project_config(root: Optional[Path] = None, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """读取 templatef.toml

    显式传入的 config_path 必须存在；未传入时查找项目根目录下的
    templatef.toml，不存在则返回空配置。
    """
    if config_path is None:
        if root is None:
            return {}
        config_path = Path(root) / PROJECT_CONFIG_FILENAME
        if not config_path.exists():
            return {}
    elif not Path(config_path).exists():
        raise ConfigurationError(f"配置文件不存在: {config_path}")

    try:
        with open(config_path, 'rb') as f:
            config = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigurationError(f"配置文件格式错误 {config_path}: {e}", cause=e) from e
    except OSError as e:
        raise ConfigurationError(f"无法读取配置文件 {config_path}: {e}", cause=e) from e

    logger.debug(f"已加载配置文件: {config_path}")
    return config


def rule_overrides(config: Dict[str, Any], project_type: str) -> Dict[str, Any]:
    rules = config.get('rules', {})
    if not isinstance(rules, dict):
        raise ConfigurationError("配置项 [rules] 必须是表")
    overrides = rules.get(project_type, {})
    if not isinstance(overrides, dict):
        raise ConfigurationError(f"配置项 [rules.{project_type}] 必须是表")
    return overrides
