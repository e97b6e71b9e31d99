"""
占位符解析与替换

resolve() 只做纯计算：按 用户输入 → 元数据推导 → 规则回退值 的顺序
为每个占位符确定具体值；apply() 负责在目标文件中把具体值替换成令牌。
"""
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import tomli
from loguru import logger

from templatef.config import DEFAULT_PLACEHOLDER_FORMAT
from .errors import ConfigurationError
from .fsutils import normalize_rel_path, read_text, write_text_atomic
from .models import RuleTable, SubstitutionResult
from .rules import get_rule_table

DIRNAME_SOURCE = "@dirname"

_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_README_TITLE_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
_VITE_BASE_RE = re.compile(r"""\bbase\s*:\s*(['"`])(.*?)\1""")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"^\s*//.*$", re.MULTILINE)


@dataclass
class SubstitutionContext:
    """占位符解析的输入"""
    project_dir_name: str = ""
    inputs: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    placeholder_format: str = DEFAULT_PLACEHOLDER_FORMAT


def validate_format(placeholder_format: str) -> None:
    if "NAME" not in placeholder_format:
        raise ConfigurationError(f"占位符格式必须包含 NAME: {placeholder_format}")
    prefix, _, suffix = placeholder_format.partition("NAME")
    if not prefix or not suffix:
        raise ConfigurationError(f"占位符格式必须在 NAME 两侧带分隔符: {placeholder_format}")


def format_token(name: str, placeholder_format: str = DEFAULT_PLACEHOLDER_FORMAT) -> str:
    """按格式生成令牌，例如 PROJECT_NAME → {{PROJECT_NAME}}"""
    return placeholder_format.replace("NAME", name, 1)


def token_pattern(placeholder_format: str = DEFAULT_PLACEHOLDER_FORMAT) -> "re.Pattern[str]":
    """匹配该格式下任意令牌的正则，分组 1 为占位符名"""
    prefix, _, suffix = placeholder_format.partition("NAME")
    return re.compile(re.escape(prefix) + r"([A-Z][A-Z0-9_]*)" + re.escape(suffix))


def substitute_literals(content: str, mapping: Dict[str, str]) -> Tuple[str, int]:
    """把 mapping 的键逐字替换为对应的值，返回 (新内容, 替换次数)

    较长的键优先匹配，一次扫描完成，已替换出的文本不会被再次匹配。
    """
    keys = sorted((k for k in mapping if k), key=lambda k: (-len(k), k))
    if not keys:
        return content, 0
    pattern = re.compile("|".join(re.escape(k) for k in keys))
    return pattern.subn(lambda m: mapping[m.group(0)], content)


def lookup(data: Any, dotted_key: str) -> Any:
    """按点分键取值，数字段作为列表下标"""
    current = data
    for part in dotted_key.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def strip_json_comments(text: str) -> str:
    text = _BLOCK_COMMENT_RE.sub("", text)
    return _LINE_COMMENT_RE.sub("", text)


def parse_metadata_file(path: Path) -> Optional[Dict[str, Any]]:
    """按文件类型解析元数据源；无法识别的类型返回 None"""
    name = path.name
    text = read_text(path)
    if name.endswith(".jsonc"):
        return json.loads(strip_json_comments(text))
    if name.endswith(".json"):
        return json.loads(text)
    if name.endswith(".toml"):
        return tomli.loads(text)
    if name.endswith(".md"):
        match = _README_TITLE_RE.search(text)
        return {'title': match.group(1)} if match else {}
    if name.endswith((".html", ".htm")):
        match = _TITLE_RE.search(text)
        return {'title': match.group(1).strip()} if match else {}
    if name.startswith("vite.config."):
        match = _VITE_BASE_RE.search(text)
        return {'base': match.group(2)} if match else {}
    return None


def collect_metadata(root: Path, rule_table: RuleTable) -> Dict[str, Dict[str, Any]]:
    """读取规则表引用的所有元数据源文件

    解析失败只记录警告：推导默认值不可用时仍可以使用用户输入或回退值。
    """
    root = Path(root)
    metadata: Dict[str, Dict[str, Any]] = {}
    files = []
    for rule in rule_table.placeholders:
        for source in rule.sources:
            if source == DIRNAME_SOURCE or ":" not in source:
                continue
            file_name = source.split(":", 1)[0]
            if file_name not in files:
                files.append(file_name)

    for file_name in files:
        path = root / file_name
        if not path.is_file():
            continue
        try:
            data = parse_metadata_file(path)
        except (ValueError, tomli.TOMLDecodeError) as e:
            logger.warning(f"⚠️ 无法解析元数据文件 {file_name}: {e}")
            continue
        if isinstance(data, dict):
            metadata[file_name] = data
    return metadata


class PlaceholderSubstitutor:
    """占位符解析与替换器"""

    def __init__(self, rule_tables: Optional[Dict[str, RuleTable]] = None):
        self.rule_tables = dict(rule_tables or {})

    def _table(self, project_type: str) -> RuleTable:
        if project_type not in self.rule_tables:
            self.rule_tables[project_type] = get_rule_table(project_type)
        return self.rule_tables[project_type]

    @staticmethod
    def _derive(sources: Iterable[str], ctx: SubstitutionContext) -> Optional[str]:
        for source in sources:
            if source == DIRNAME_SOURCE:
                value = ctx.project_dir_name
            else:
                file_name, _, key = source.partition(":")
                value = lookup(ctx.metadata.get(file_name), key) if key else None
            if isinstance(value, str) and value.strip():
                return value
        return None

    def resolve(self, project_type: str, ctx: SubstitutionContext) -> Dict[str, str]:
        """计算 令牌 → 具体值 映射

        Raises:
            ConfigurationError: 必需占位符无法解析或格式无效
        """
        validate_format(ctx.placeholder_format)
        table = self._table(project_type)
        placeholder_map: Dict[str, str] = {}
        seen = set()

        for rule in table.placeholders:
            seen.add(rule.name)
            value = ctx.inputs.get(rule.name)
            origin = "用户输入"
            if not value:
                value = self._derive(rule.sources, ctx)
                origin = "元数据"
            if not value and rule.fallback:
                value = rule.fallback
                origin = "回退值"
            if not value:
                if rule.required:
                    raise ConfigurationError(
                        f"必需占位符 {rule.name} 无法解析，请使用 --set {rule.name}=<值> 提供",
                        details={'placeholder': rule.name},
                    )
                logger.debug(f"跳过占位符 {rule.name}: 没有可用的值")
                continue
            placeholder_map[format_token(rule.name, ctx.placeholder_format)] = value
            logger.debug(f"占位符 {rule.name} = {value!r} ({origin})")

        # 规则表之外的用户输入同样作为占位符
        for name, value in ctx.inputs.items():
            if name in seen or not value:
                continue
            if not name.replace("_", "").isalnum():
                raise ConfigurationError(f"占位符名只能包含字母、数字和下划线: {name}")
            placeholder_map[format_token(name, ctx.placeholder_format)] = value

        return placeholder_map

    def apply(
        self,
        placeholder_map: Dict[str, str],
        target_files: Iterable[str],
        root: Path,
        dry_run: bool = True,
    ) -> SubstitutionResult:
        """在目标文件中把具体值替换为令牌

        参数:
            placeholder_map: 令牌 → 具体值
            target_files: 相对根目录的目标文件
            root: 项目根目录
            dry_run: 为 True 时只计算新内容，不写文件
        返回:
            SubstitutionResult
        """
        root = Path(root)
        reverse = {}
        for token, value in placeholder_map.items():
            # 多个令牌同值时保留先出现的
            reverse.setdefault(value, token)

        result = SubstitutionResult()
        for rel in target_files:
            rel = normalize_rel_path(rel)
            path = root / rel
            if not path.is_file():
                logger.debug(f"目标文件不存在，跳过: {rel}")
                continue
            try:
                content = read_text(path)
            except UnicodeDecodeError:
                logger.warning(f"⚠️ 目标文件不是 UTF-8 文本，跳过: {rel}")
                continue
            new_content, count = substitute_literals(content, reverse)
            result.files_processed += 1
            result.per_file[rel] = count
            result.replacements += count
            if count:
                result.contents[rel] = new_content
                result.originals[rel] = content

        if not dry_run:
            for rel, new_content in result.contents.items():
                write_text_atomic(root / rel, new_content)
                logger.info(f"✏️ 已替换 {rel} 中的 {result.per_file[rel]} 处值")
        return result


def expand_targets(root: Path, patterns: Iterable[str]) -> List[str]:
    """把目标文件列表展开为存在的相对路径，支持通配符"""
    root = Path(root)
    targets: List[str] = []
    for pattern in patterns:
        if any(ch in pattern for ch in "*?["):
            matches = sorted(p.relative_to(root).as_posix() for p in root.glob(pattern) if p.is_file())
        else:
            matches = [normalize_rel_path(pattern)]
        for rel in matches:
            if rel not in targets:
                targets.append(rel)
    return targets
