"""
撤销日志脱敏

按固定顺序对每个类别的正则依次匹配，把命中的敏感片段替换为该类别的
占位符（如 {{SANITIZED_API_KEY}}），并生成不包含原始值的脱敏报告。
"""
import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from loguru import logger

from templatef.config import SANITIZATION_CATEGORIES
from .errors import SanitizationConfigError
from .models import UndoLog

SANITIZED_TOKEN_RE = re.compile(r"\{\{SANITIZED_[A-Z0-9_]+\}\}")


def contains_sanitized_token(value: str) -> bool:
    return bool(SANITIZED_TOKEN_RE.search(value or ""))


def fingerprint(value: str) -> str:
    """原始值的短指纹，用于在共享日志中标识同一个值而不暴露它"""
    return "sha256:" + hashlib.sha256(value.encode('utf-8')).hexdigest()[:12]


@dataclass(frozen=True)
class SanitizationPattern:
    """单个脱敏正则

    global_match 为 False 时只替换第一处命中。
    """
    regex: str
    global_match: bool = True
    flags: int = 0

    def compile(self) -> "re.Pattern[str]":
        return re.compile(self.regex, self.flags)


@dataclass
class SanitizationRule:
    """一个脱敏类别"""
    name: str
    patterns: Tuple[SanitizationPattern, ...]
    replacement: str
    description: str = ""
    compiled: List["re.Pattern[str]"] = field(default_factory=list, repr=False, compare=False)


@dataclass
class SanitizedValue:
    value: Any
    sanitized: bool = False
    categories: List[str] = field(default_factory=list)


@dataclass
class SanitizationOutcome:
    """sanitize_undo_log 的结果

    sanitization_map 含原始值，只返回给调用方，不写入共享日志。
    """
    sanitized_log: UndoLog
    report: Dict[str, Any]
    sanitization_map: Dict[str, List[Dict[str, str]]]


def _to_pattern(item: Union[str, SanitizationPattern, Mapping[str, Any]]) -> SanitizationPattern:
    if isinstance(item, SanitizationPattern):
        return item
    if isinstance(item, str):
        return SanitizationPattern(item)
    if isinstance(item, Mapping) and isinstance(item.get('regex'), str):
        return SanitizationPattern(item['regex'], bool(item.get('global', True)))
    raise SanitizationConfigError(f"无法识别的脱敏模式: {item!r}")


def build_rule(name: str, data: Union[SanitizationRule, Mapping[str, Any]]) -> SanitizationRule:
    """把配置数据转换为 SanitizationRule，格式错误时抛出 SanitizationConfigError"""
    if isinstance(data, SanitizationRule):
        patterns, replacement, description = data.patterns, data.replacement, data.description
    elif isinstance(data, Mapping):
        patterns = data.get('patterns')
        replacement = data.get('replacement')
        description = data.get('description') or f"自定义规则: {name}"
    else:
        raise SanitizationConfigError(f"脱敏规则 '{name}' 必须是对象")

    if not name or not isinstance(name, str):
        raise SanitizationConfigError("脱敏规则必须有名称")
    if isinstance(patterns, (str, bytes)) or not isinstance(patterns, Iterable):
        raise SanitizationConfigError(f"脱敏规则 '{name}' 必须提供 patterns 列表")
    patterns = tuple(_to_pattern(p) for p in patterns)
    if not patterns:
        raise SanitizationConfigError(f"脱敏规则 '{name}' 的 patterns 不能为空")
    if not replacement or not isinstance(replacement, str):
        raise SanitizationConfigError(f"脱敏规则 '{name}' 必须提供 replacement 字符串")

    compiled = []
    for index, pattern in enumerate(patterns):
        try:
            compiled.append(pattern.compile())
        except re.error as e:
            raise SanitizationConfigError(f"脱敏规则 '{name}' 的第 {index} 个正则无效: {e}",
                                          details={'rule': name, 'pattern': pattern.regex}, cause=e) from e
        if compiled[-1].search("") is not None:
            raise SanitizationConfigError(f"脱敏规则 '{name}' 的第 {index} 个正则会匹配空字符串")
    return SanitizationRule(name, patterns, replacement, description, compiled)


def default_rules() -> List[SanitizationRule]:
    return [build_rule(c['name'], c) for c in SANITIZATION_CATEGORIES]


class Sanitizer:
    """撤销日志脱敏器

    参数:
        custom_rules: {名称: 规则}；与内置类别同名时原位覆盖，否则追加到末尾
        disabled_rules: 要禁用的类别名
    """

    def __init__(
        self,
        custom_rules: Optional[Mapping[str, Any]] = None,
        disabled_rules: Optional[Iterable[str]] = None,
    ):
        self.rules: List[SanitizationRule] = default_rules()
        for name, rule in (custom_rules or {}).items():
            self.add_rule(name, rule)
        for name in disabled_rules or ():
            self.remove_rule(name)

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self.rules]

    def add_rule(self, name: str, rule: Union[SanitizationRule, Mapping[str, Any]]) -> None:
        built = build_rule(name, rule)
        for index, existing in enumerate(self.rules):
            if existing.name == name:
                self.rules[index] = built
                break
        else:
            self.rules.append(built)
        logger.debug(f"已注册脱敏规则: {name}")

    def remove_rule(self, name: str) -> bool:
        before = len(self.rules)
        self.rules = [rule for rule in self.rules if rule.name != name]
        if len(self.rules) == before:
            logger.warning(f"⚠️ 脱敏规则不存在: {name}")
            return False
        return True

    def available_rules(self) -> Dict[str, Dict[str, Any]]:
        return {
            rule.name: {
                'description': rule.description,
                'replacement': rule.replacement,
                'patternCount': len(rule.patterns),
            }
            for rule in self.rules
        }

    def validate_configuration(self) -> Dict[str, Any]:
        """检查规则配置

        返回:
            {valid, issues, warnings, ruleCount}
        """
        issues: List[str] = []
        warnings: List[str] = []
        for rule in self.rules:
            if not rule.patterns:
                issues.append(f"规则 '{rule.name}' 没有任何正则")
            if not rule.replacement:
                issues.append(f"规则 '{rule.name}' 缺少 replacement")
            for index, pattern in enumerate(rule.patterns):
                if not pattern.global_match:
                    warnings.append(f"规则 '{rule.name}' 的第 {index} 个正则不是全局匹配，只会替换第一处")
            for other in self.rules:
                if any(p.search(rule.replacement) for p in other.compiled):
                    warnings.append(f"规则 '{rule.name}' 的替换值会被规则 '{other.name}' 再次匹配")
        return {
            'valid': not issues,
            'issues': issues,
            'warnings': warnings,
            'ruleCount': len(self.rules),
        }

    def sanitize_value(
        self,
        value: Any,
        sanitization_map: Optional[Dict[str, List[Dict[str, str]]]] = None,
    ) -> SanitizedValue:
        """脱敏单个值

        每个类别的每条正则依次作用于上一步的结果；命中的片段逐字替换为
        该类别的占位符，并按类别去重记录到 sanitization_map。
        """
        if not isinstance(value, str) or not value:
            return SanitizedValue(value)
        if sanitization_map is None:
            sanitization_map = {}

        current = value
        categories: List[str] = []
        for rule in self.rules:
            used = False
            for pattern, compiled in zip(rule.patterns, rule.compiled):
                if pattern.global_match:
                    matches = list(dict.fromkeys(m.group(0) for m in compiled.finditer(current)))
                else:
                    first = compiled.search(current)
                    matches = [first.group(0)] if first else []
                for match in matches:
                    entries = sanitization_map.setdefault(rule.name, [])
                    if not any(item['original'] == match for item in entries):
                        entries.append({
                            'original': match,
                            'replacement': rule.replacement,
                            'description': rule.description,
                        })
                    count = -1 if pattern.global_match else 1
                    current = current.replace(match, rule.replacement, count)
                    used = True
            if used:
                categories.append(rule.name)

        return SanitizedValue(current, current != value, categories)

    def _walk(self, log: UndoLog, sanitization_map: Dict[str, List[Dict[str, str]]]) -> Dict[str, Any]:
        """对日志中所有可脱敏字段执行脱敏（原地修改传入的副本）"""
        stats = {'itemsRemoved': 0, 'categories': [], 'pathsChanged': 0}

        def apply(value):
            result = self.sanitize_value(value, sanitization_map)
            if result.sanitized:
                stats['itemsRemoved'] += 1
                for category in result.categories:
                    if category not in stats['categories']:
                        stats['categories'].append(category)
            return result

        for token in list(log.original_values):
            log.original_values[token] = apply(log.original_values[token]).value

        for op in log.file_operations:
            if op.original_content and op.encoding == "utf-8":
                op.original_content = apply(op.original_content).value
            result = apply(op.path)
            if result.sanitized:
                op.path = result.value
                stats['pathsChanged'] += 1
            if op.regeneration_command:
                op.regeneration_command = apply(op.regeneration_command).value
            if op.manifest:
                op.manifest = [apply(entry).value for entry in op.manifest]

        for key, value in list(log.metadata.items()):
            if isinstance(value, str):
                log.metadata[key] = apply(value).value
        return stats

    def _order_categories(self, categories: Iterable[str]) -> List[str]:
        found = set(categories)
        return [name for name in self.rule_names if name in found]

    def _report(self, stats, sanitization_map, original_size: int, sanitized_size: int) -> Dict[str, Any]:
        descriptions = {rule.name: rule.description for rule in self.rules}
        categories = self._order_categories(stats['categories'])
        reduction = original_size - sanitized_size
        report = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            'itemsRemoved': stats['itemsRemoved'],
            'categoriesAffected': categories,
            'functionalityPreserved': stats['pathsChanged'] == 0,
            'sizeReduction': {
                'originalSize': original_size,
                'sanitizedSize': sanitized_size,
                'reductionBytes': reduction,
                'reductionPercent': round(reduction / original_size * 100) if original_size else 0,
            },
            'details': {},
            'recommendations': [],
        }
        for category in self._order_categories(sanitization_map):
            items = sanitization_map[category]
            report['details'][category] = {
                'description': descriptions.get(category, "未知类别"),
                'itemCount': len(items),
                'items': [{'replacement': i['replacement'], 'description': i['description']} for i in items],
            }

        recommendations = report['recommendations']
        if stats['itemsRemoved']:
            recommendations.append("提交到版本库之前请检查脱敏后的值")
            recommendations.append("创建 .restore-defaults.json 以便自动恢复被脱敏的值")
            if 'personalInfo' in categories:
                recommendations.append("模板中建议使用通用的名称")
            if 'apiKeys' in categories:
                recommendations.append("模板中的 API 密钥应改为环境变量")
            if 'filePaths' in categories:
                recommendations.append("使用相对路径代替绝对路径")
            if stats['pathsChanged']:
                recommendations.append("部分文件路径被脱敏，这些操作将无法恢复")
        else:
            recommendations.append("未发现敏感数据，撤销日志可以安全共享")
        return report

    def sanitize_undo_log(self, undo_log: UndoLog) -> SanitizationOutcome:
        """脱敏整个撤销日志，返回新的日志对象，不修改传入的日志"""
        sanitized = undo_log.copy()
        sanitization_map: Dict[str, List[Dict[str, str]]] = {}
        stats = self._walk(sanitized, sanitization_map)

        sanitized.sanitized = True
        sanitized.sanitization_map = {
            category: [
                {'fingerprint': fingerprint(i['original']), 'replacement': i['replacement'],
                 'description': i['description']}
                for i in items
            ]
            for category, items in sanitization_map.items()
        }
        sanitized.sanitization_report = None
        original_size = len(json.dumps(undo_log.to_dict(), ensure_ascii=False))
        sanitized_size = len(json.dumps(sanitized.to_dict(), ensure_ascii=False))
        report = self._report(stats, sanitization_map, original_size, sanitized_size)
        sanitized.sanitization_report = report

        logger.info(f"🔒 脱敏完成: {report['itemsRemoved']} 项，类别 {report['categoriesAffected']}")
        return SanitizationOutcome(sanitized, report, sanitization_map)

    def preview_sanitization(self, undo_log: UndoLog) -> Dict[str, Any]:
        """预览脱敏结果，不修改任何东西"""
        scratch = undo_log.copy()
        preview_map: Dict[str, List[Dict[str, str]]] = {}
        stats = self._walk(scratch, preview_map)
        size = len(json.dumps(undo_log.to_dict(), ensure_ascii=False))
        scratch_size = len(json.dumps(scratch.to_dict(), ensure_ascii=False))
        report = self._report(stats, preview_map, size, scratch_size)
        report['wouldSanitize'] = stats['itemsRemoved'] > 0
        return report
