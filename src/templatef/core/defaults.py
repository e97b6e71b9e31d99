"""
恢复默认值

.restore-defaults.json 为被脱敏的占位符提供恢复时使用的值，支持
${VAR}、${VAR:-默认值} 和 ${PWD##*/} 展开，\\${...} 保持字面量。
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from templatef.config import PLACEHOLDER_FORMATS, RESTORE_DEFAULTS_FILENAME
from .errors import ConfigurationError
from .fsutils import read_text, write_text_atomic
from .placeholder import token_pattern

DEFAULTS_VERSION = "1.0.0"
_VARIABLE_RE = re.compile(r"(\\)?\$\{([^}]+)\}")

# 生成默认值文件时的常见占位符
_KNOWN_DEFAULTS = {
    "PROJECT_NAME": "${PWD##*/}",
    "AUTHOR": "${USER}",
    "AUTHOR_NAME": "${USER}",
    "AUTHOR_EMAIL": "dev@example.com",
    "PROJECT_DESCRIPTION": "A template-restored project",
}


def is_token(key: str) -> bool:
    return any(token_pattern(fmt).fullmatch(key) for fmt in PLACEHOLDER_FORMATS.values())


def token_name(token: str) -> Optional[str]:
    for fmt in PLACEHOLDER_FORMATS.values():
        match = token_pattern(fmt).fullmatch(token)
        if match:
            return match.group(1)
    return None


def expand_variables(value: str, environ: Mapping[str, str], project_name: str) -> str:
    """展开 shell 风格变量；未定义且无默认值的变量展开为空字符串"""

    def expand(match):
        if match.group(1):
            return "${" + match.group(2) + "}"
        expr = match.group(2)
        name, sep, default = expr.partition(":-")
        if name == "PWD##*/":
            return project_name
        if name in environ:
            return environ[name]
        return default if sep else ""

    return _VARIABLE_RE.sub(expand, value)


class RestoreDefaults:
    """恢复默认值文件"""

    def __init__(self, root: Path, filename: str = RESTORE_DEFAULTS_FILENAME,
                 environ: Optional[Mapping[str, str]] = None):
        self.root = Path(root)
        self.path = self.root / filename
        self.environ = dict(os.environ if environ is None else environ)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Dict[str, Any]:
        """读取并校验文件结构，不存在时返回空配置"""
        if not self.exists():
            return {'version': DEFAULTS_VERSION, 'defaults': {}, 'environmentVariables': True,
                    'promptForMissing': True}
        try:
            config = json.loads(read_text(self.path))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"默认值文件不是合法的 JSON: {self.path}: {e}", cause=e) from e

        errors = self.validate(config)
        if errors:
            raise ConfigurationError(f"默认值文件格式错误: {'; '.join(errors)}",
                                     details={'path': str(self.path), 'errors': errors})
        return config

    @staticmethod
    def validate(config: Any) -> List[str]:
        if not isinstance(config, dict):
            return ["顶层必须是对象"]
        errors = []
        if not config.get('version'):
            errors.append("缺少必需字段: version")
        defaults = config.get('defaults')
        if not isinstance(defaults, dict):
            errors.append("缺少或无效的字段: defaults（必须是对象）")
        else:
            for key, value in defaults.items():
                if not is_token(key):
                    errors.append(f"无效的占位符格式: {key}")
                if not isinstance(value, str):
                    errors.append(f"{key} 的默认值必须是字符串")
        for key in ('environmentVariables', 'promptForMissing'):
            if key in config and not isinstance(config[key], bool):
                errors.append(f"{key} 必须是布尔值")
        return errors

    def load(self) -> Dict[str, str]:
        """返回展开后的 {令牌: 值}"""
        config = self.read()
        defaults = dict(config.get('defaults', {}))
        if config.get('environmentVariables', True):
            defaults = {k: expand_variables(v, self.environ, self.root.resolve().name)
                        for k, v in defaults.items()}
        else:
            defaults = {k: _VARIABLE_RE.sub(lambda m: m.group(0)[1:] if m.group(1) else m.group(0), v)
                        for k, v in defaults.items()}
        return defaults

    @property
    def prompt_for_missing(self) -> bool:
        return bool(self.read().get('promptForMissing', True))

    def resolve(self, tokens: Iterable[str]) -> Tuple[Dict[str, str], List[str]]:
        """为给定令牌查找默认值

        返回:
            (已解析的 {令牌: 值}, 仍缺失的令牌)
        """
        defaults = self.load()
        resolved, missing = {}, []
        for token in tokens:
            if token in defaults:
                resolved[token] = defaults[token]
            else:
                missing.append(token)
        return resolved, missing

    def generate(self, tokens: Iterable[str], force: bool = False) -> Path:
        """生成默认值文件模板"""
        if self.exists() and not force:
            raise ConfigurationError(f"默认值文件已存在: {self.path}（使用 --force 覆盖）")
        defaults = {}
        for token in tokens:
            name = token_name(token) or token.strip("{}_%")
            defaults[token] = _KNOWN_DEFAULTS.get(name, f"default-{name.lower().replace('_', '-')}")
        config = {
            'version': DEFAULTS_VERSION,
            'defaults': defaults,
            'environmentVariables': True,
            'promptForMissing': True,
        }
        write_text_atomic(self.path, json.dumps(config, indent=2, ensure_ascii=False) + "\n")
        logger.info(f"📝 已生成默认值文件: {self.path}")
        return self.path
