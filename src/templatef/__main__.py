"""
templatef 包的命令行入口点，使用 Typer 实现命令行界面
"""
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.prompt import Prompt
from rich.text import Text

from templatef.config import PLACEHOLDER_FORMATS
from templatef.core.errors import TemplatefError
from templatef.core.rules import list_project_types
from templatef.core.service import TemplateService, resolve_log_path
from templatef.core.undo import UndoLogStore
from templatef.preview import PlanPreview

# 创建 Typer 应用
app = typer.Typer(help="模板转换工具 - 把项目转换为模板并可随时恢复")

# 创建 Rich Console
console = Console()


def setup_logger(app_name="app", project_root=None, console_output=True):
    """配置 Loguru 日志系统

    Args:
        app_name: 应用名称，用于日志目录
        project_root: 日志根目录，默认为 ~/.templatef
        console_output: 是否输出到控制台，默认为True

    Returns:
        tuple: (logger, config_info)
            - logger: 配置好的 logger 实例
            - config_info: 包含日志配置信息的字典
    """
    if project_root is None:
        project_root = Path.home() / ".templatef"

    # 清除默认处理器
    logger.remove()

    if console_output:
        logger.add(
            sys.stderr,
            level="INFO",
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level.icon} {level: <8}</level> | <level>{message}</level>"
        )

    # 使用 datetime 构建日志路径
    current_time = datetime.now()
    date_str = current_time.strftime("%Y-%m-%d")
    hour_str = current_time.strftime("%H")
    minute_str = current_time.strftime("%M%S")

    log_dir = os.path.join(project_root, "logs", app_name, date_str, hour_str)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{minute_str}.log")

    # 添加文件处理器
    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {elapsed} | {level.icon} {level: <8} | {name}:{function}:{line} - {message}",
    )

    config_info = {
        'log_file': log_file,
    }

    logger.debug(f"日志系统已初始化，应用名称: {app_name}")
    return logger, config_info


def parse_assignments(values: Optional[List[str]]) -> Dict[str, str]:
    """解析 --set KEY=VALUE"""
    result = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise typer.BadParameter(f"格式应为 KEY=VALUE: {item}", param_hint="--set")
        result[key] = value
    return result


def resolve_format(fmt: str) -> str:
    if fmt in PLACEHOLDER_FORMATS:
        return PLACEHOLDER_FORMATS[fmt]
    if "NAME" in fmt:
        return fmt
    choices = ", ".join(PLACEHOLDER_FORMATS)
    raise typer.BadParameter(f"未知的占位符格式: {fmt}（可选: {choices}，或包含 NAME 的自定义格式）",
                             param_hint="--format")


def fail(error: TemplatefError) -> None:
    logger.error(f"❌ {error.message}")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="在控制台输出调试日志"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="不在控制台输出日志"),
):
    """模板转换工具"""
    setup_logger(app_name="templatef", console_output=not quiet)
    if verbose and not quiet:
        logger.add(sys.stderr, level="DEBUG", filter=lambda record: record["level"].no < 20,
                   format="<dim>{time:HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}</dim>")


@app.command()
def convert(
    path: Path = typer.Argument(Path("."), help="项目目录", exists=True, file_okay=False, dir_okay=True),
    project_type: str = typer.Option("generic", "--type", "-t", help="项目类型"),
    set_values: Optional[List[str]] = typer.Option(None, "--set", "-s", help="显式指定占位符值 KEY=VALUE"),
    fmt: str = typer.Option("double-brace", "--format", "-f", help="占位符格式 (double-brace/double-underscore/percent)"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="只预览计划，不修改文件"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
    sanitize: bool = typer.Option(False, "--sanitize", help="写入前对撤销日志脱敏"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="templatef.toml 配置文件"),
):
    """把项目转换为模板"""
    inputs = parse_assignments(set_values)
    placeholder_format = resolve_format(fmt)
    service = TemplateService(config_path=config)
    preview = PlanPreview(console)

    try:
        plan = service.plan_conversion(path, project_type, inputs, placeholder_format)
    except TemplatefError as e:
        fail(e)

    preview.show_plan(plan)
    if dry_run:
        console.print("[yellow]注意：这是预览模式，实际操作未执行[/yellow]")
        return
    if plan.is_empty:
        return
    if not yes and not preview.confirm("[bold]确认执行以上转换吗?[/bold]", default=False):
        console.print("操作已取消")
        raise typer.Exit(code=0)

    try:
        result = service.convert(plan.with_mode("apply"), sanitize=sanitize)
    except TemplatefError as e:
        fail(e)

    if result.sanitization_report is not None:
        preview.show_sanitization_report(result.sanitization_report)
    console.print(f"📝 撤销日志: {result.log_path}")
    if not result.success:
        for failure in result.execution.failures:
            console.print(Text(f"❌ {failure.action} {failure.path}: {failure.cause}", style="red"))
        raise typer.Exit(code=1)
    console.print("[green]✅ 转换完成[/green]")


@app.command()
def restore(
    path: Path = typer.Argument(Path("."), help="项目目录", exists=True, file_okay=False, dir_okay=True),
    only: Optional[List[str]] = typer.Option(None, "--only", "-o", help="只恢复这些路径（可多次指定）"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="只预览恢复结果"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认和缺失值提示"),
    log: Optional[Path] = typer.Option(None, "--log", "-l", help="撤销日志路径"),
    defaults: bool = typer.Option(True, "--defaults/--no-defaults", help="是否使用 .restore-defaults.json"),
    delete_log: bool = typer.Option(False, "--delete-log", help="全量恢复成功后删除撤销日志"),
):
    """根据撤销日志恢复项目"""
    service = TemplateService()
    preview = PlanPreview(console)
    selection = list(only) if only else None

    try:
        values: Dict[str, str] = {}
        ask = not yes and not dry_run and (not defaults or service.prompt_for_missing(path))
        if ask:
            for token in service.missing_values(path, log, use_defaults=defaults):
                answer = Prompt.ask(f"请输入 {token} 的值（留空保持令牌不变）", default="", console=console)
                if answer:
                    values[token] = answer

        if not dry_run and not yes:
            preview_result = service.restore(path, selection, dry_run=True, log_path=log,
                                             use_defaults=defaults, values=values)
            preview.show_restore_result(preview_result)
            if not preview.confirm("[bold]确认执行恢复吗?[/bold]", default=False):
                console.print("操作已取消")
                raise typer.Exit(code=0)

        result = service.restore(path, selection, dry_run=dry_run, log_path=log, use_defaults=defaults,
                                 values=values, delete_log=delete_log)
    except TemplatefError as e:
        fail(e)

    preview.show_restore_result(result)
    if not result.success:
        raise typer.Exit(code=1)
    if dry_run:
        console.print("[yellow]注意：这是预览模式，实际操作未执行[/yellow]")
    else:
        console.print("[green]✅ 恢复完成[/green]")


@app.command()
def sanitize(
    path: Path = typer.Argument(Path("."), help="撤销日志文件或项目目录", exists=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出文件，默认覆盖原日志"),
    preview_only: bool = typer.Option(False, "--preview", "-p", help="只预览将被脱敏的内容"),
    map_out: Optional[Path] = typer.Option(None, "--map-out", help="把含原始值的脱敏映射写到该文件（请勿共享）"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="templatef.toml 配置文件"),
):
    """对撤销日志脱敏以便共享"""
    service = TemplateService(config_path=config)
    preview = PlanPreview(console)
    log_path = resolve_log_path(path)

    try:
        if preview_only:
            report = service.preview_sanitization(log_path)
            preview.show_sanitization_report(report)
            return
        outcome = service.sanitize_log(log_path, output)
    except TemplatefError as e:
        fail(e)

    preview.show_sanitization_report(outcome.report)
    if map_out is not None:
        map_out.write_text(json.dumps(outcome.sanitization_map, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"[yellow]⚠️ 脱敏映射包含原始值: {map_out}[/yellow]")
    console.print(f"🔒 已写入: {output or log_path}")


@app.command()
def info(
    path: Path = typer.Argument(Path("."), help="撤销日志文件或项目目录", exists=True),
):
    """显示撤销日志概要"""
    log_path = resolve_log_path(path)
    store = UndoLogStore()
    try:
        undo_log = store.read(log_path)
    except TemplatefError as e:
        fail(e)
    PlanPreview(console).show_log_summary(store.summary(undo_log), log_path)


@app.command("init-defaults")
def init_defaults(
    path: Path = typer.Argument(Path("."), help="项目目录", exists=True, file_okay=False, dir_okay=True),
    force: bool = typer.Option(False, "--force", help="覆盖已有的默认值文件"),
    log: Optional[Path] = typer.Option(None, "--log", "-l", help="撤销日志路径"),
):
    """根据撤销日志生成 .restore-defaults.json"""
    try:
        written = TemplateService().init_defaults(path, force=force, log_path=log)
    except TemplatefError as e:
        fail(e)
    console.print(f"📝 已生成: {written}")


@app.command("types")
def types_():
    """列出支持的项目类型"""
    for key, name in list_project_types().items():
        console.print(f"  [cyan]{key:<12}[/cyan] {name}")


def main():
    app()


if __name__ == "__main__":
    main()
