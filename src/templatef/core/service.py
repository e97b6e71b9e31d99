"""
模板服务 - 整合规划、执行、撤销日志和恢复的高级接口
"""
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from templatef.config import DEFAULT_PLACEHOLDER_FORMAT, UNDO_LOG_FILENAME
from .defaults import RestoreDefaults
from .errors import ConfigurationError, NotFoundError, SanitizationConfigError
from .executor import Executor
from .models import MODE_APPLY, ConversionResult, Plan, RestoreResult, RuleTable, UndoLog
from .placeholder import PlaceholderSubstitutor, SubstitutionContext
from .planner import build_plan
from .restore import RestorationEngine
from .rules import get_rule_table, load_project_config, rule_overrides
from .sanitizer import SanitizationOutcome, Sanitizer, contains_sanitized_token
from .undo import UndoLogStore, default_log_path


class TemplateService:
    """模板服务类

    Args:
        config_path: 显式指定的 templatef.toml；为 None 时读取项目根目录下的配置
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self.store = UndoLogStore()
        self.executor = Executor()
        self.engine = RestorationEngine()

    def load_config(self, root: Optional[Path]) -> Dict[str, Any]:
        return load_project_config(root, self.config_path)

    def load_rule_table(self, root: Path, project_type: str) -> RuleTable:
        config = self.load_config(root)
        return get_rule_table(project_type, rule_overrides(config, project_type))

    def build_sanitizer(self, root: Optional[Path] = None) -> Sanitizer:
        """按配置文件的 [sanitizer] 节构建脱敏器"""
        config = load_project_config(root, self.config_path)
        section = config.get('sanitizer', {})
        if not isinstance(section, dict):
            raise SanitizationConfigError("配置项 [sanitizer] 必须是表")
        custom = {}
        for rule in section.get('rules', []):
            if not isinstance(rule, dict) or not rule.get('name'):
                raise SanitizationConfigError(f"自定义脱敏规则缺少 name: {rule!r}")
            custom[rule['name']] = rule
        return Sanitizer(custom_rules=custom, disabled_rules=section.get('disabled', []))

    def plan_conversion(
        self,
        root: Union[str, Path],
        project_type: str = "generic",
        inputs: Optional[Dict[str, str]] = None,
        placeholder_format: str = DEFAULT_PLACEHOLDER_FORMAT,
    ) -> Plan:
        """生成转换计划（不修改文件系统）"""
        root = Path(root).resolve()
        if not root.is_dir():
            raise NotFoundError(root, "项目目录")
        rule_table = self.load_rule_table(root, project_type)
        ctx = SubstitutionContext(
            project_dir_name=root.name,
            inputs=dict(inputs or {}),
            placeholder_format=placeholder_format,
        )
        substitutor = PlaceholderSubstitutor({project_type: rule_table})
        plan = build_plan(root, project_type, rule_table, ctx, substitutor)
        logger.info(f"📋 计划生成完成: {len(plan.actions)} 个动作")
        return plan

    def convert(
        self,
        plan: Plan,
        sanitize: bool = False,
        log_path: Optional[Union[str, Path]] = None,
    ) -> ConversionResult:
        """执行计划并写入撤销日志

        部分动作失败时撤销日志仍然会写入，记录已完成的操作。
        """
        if plan.mode != MODE_APPLY:
            plan = plan.with_mode(MODE_APPLY)
        root = Path(plan.project_root)
        execution = self.executor.execute(plan)
        undo_log = execution.undo_log

        report = None
        sanitization_map = None
        if sanitize:
            outcome = self.build_sanitizer(root).sanitize_undo_log(undo_log)
            undo_log = outcome.sanitized_log
            report = outcome.report
            sanitization_map = outcome.sanitization_map

        path = Path(log_path) if log_path else default_log_path(root)
        self.store.write(undo_log, path)
        if not execution.success:
            logger.warning(f"⚠️ 有 {len(execution.failures)} 个动作失败，撤销日志只记录了已完成的操作")
        return ConversionResult(
            execution=execution,
            log_path=path,
            sanitization_report=report,
            sanitization_map=sanitization_map,
        )

    def read_log(self, root: Union[str, Path], log_path: Optional[Union[str, Path]] = None) -> UndoLog:
        return self.store.read(Path(log_path) if log_path else default_log_path(root))

    def restore(
        self,
        root: Union[str, Path],
        selection: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        log_path: Optional[Union[str, Path]] = None,
        use_defaults: bool = True,
        values: Optional[Dict[str, str]] = None,
        delete_log: bool = False,
    ) -> RestoreResult:
        """根据撤销日志恢复项目

        Args:
            root: 项目根目录
            selection: 只恢复这些路径
            dry_run: 只预览
            log_path: 撤销日志路径，默认为根目录下的 .template-undo.json
            use_defaults: 是否读取 .restore-defaults.json 补全被脱敏的值
            values: 显式提供的令牌值，优先级最高
            delete_log: 全量恢复成功后删除撤销日志

        Returns:
            RestoreResult
        """
        root = Path(root).resolve()
        path = Path(log_path) if log_path else default_log_path(root)
        undo_log = self.store.read(path)

        merged: Dict[str, str] = {}
        if use_defaults:
            defaults = RestoreDefaults(root)
            # 默认值只用于补全被脱敏的令牌，日志中的真实值优先
            sanitized = [t for t, v in undo_log.original_values.items() if contains_sanitized_token(v)]
            if sanitized and defaults.exists():
                resolved, _ = defaults.resolve(sanitized)
                merged.update(resolved)
                logger.info(f"📥 从默认值文件补全了 {len(resolved)} 个令牌")
        merged.update(values or {})

        result = self.engine.restore(undo_log, root, selection=selection, dry_run=dry_run, values=merged)
        if delete_log and selection is None and not dry_run and result.success:
            self.store.delete(path)
        return result

    @staticmethod
    def prompt_for_missing(root: Union[str, Path]) -> bool:
        """默认值文件的 promptForMissing；没有默认值文件时为 True"""
        return RestoreDefaults(Path(root).resolve()).prompt_for_missing

    def missing_values(self, root: Union[str, Path], log_path: Optional[Union[str, Path]] = None,
                       use_defaults: bool = True) -> List[str]:
        """返回值已被脱敏且没有默认值可用的令牌"""
        root = Path(root).resolve()
        undo_log = self.read_log(root, log_path)
        missing = [t for t, v in undo_log.original_values.items() if contains_sanitized_token(v)]
        if use_defaults and missing:
            defaults = RestoreDefaults(root)
            if defaults.exists():
                _, missing = defaults.resolve(missing)
        return missing

    def sanitize_log(
        self,
        log_path: Union[str, Path],
        output: Optional[Union[str, Path]] = None,
    ) -> SanitizationOutcome:
        """脱敏已有的撤销日志，结果写到 output（默认覆盖原文件）"""
        log_path = Path(log_path)
        undo_log = self.store.read(log_path)
        outcome = self.build_sanitizer(log_path.parent).sanitize_undo_log(undo_log)
        self.store.write(outcome.sanitized_log, Path(output) if output else log_path)
        return outcome

    def preview_sanitization(self, log_path: Union[str, Path]) -> Dict[str, Any]:
        log_path = Path(log_path)
        undo_log = self.store.read(log_path)
        return self.build_sanitizer(log_path.parent).preview_sanitization(undo_log)

    def init_defaults(self, root: Union[str, Path], force: bool = False,
                      log_path: Optional[Union[str, Path]] = None) -> Path:
        """根据撤销日志中的令牌生成 .restore-defaults.json"""
        root = Path(root).resolve()
        undo_log = self.read_log(root, log_path)
        if not undo_log.original_values:
            raise ConfigurationError("撤销日志中没有任何占位符")
        return RestoreDefaults(root).generate(undo_log.original_values, force=force)


def resolve_log_path(path: Union[str, Path]) -> Path:
    """目录 → 目录下的撤销日志；文件 → 原样返回"""
    path = Path(path)
    return path / UNDO_LOG_FILENAME if path.is_dir() else path
