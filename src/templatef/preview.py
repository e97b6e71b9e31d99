"""
预览模块 - 在执行前展示转换计划，在执行后展示恢复结果和脱敏报告
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from templatef.core.models import ACTION_CREATE, ACTION_MODIFY, ACTION_REMOVE, Plan, RestoreResult

_ACTION_STYLE = {
    ACTION_MODIFY: ("✏️", "cyan", "修改"),
    ACTION_REMOVE: ("🗑️", "red", "删除"),
    ACTION_CREATE: ("📄", "green", "创建"),
}


class PlanPreview:
    """转换计划与结果的 rich 渲染"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    @staticmethod
    def build_tree_structure(paths: List[str]) -> Dict:
        """把相对路径列表组织成嵌套字典"""
        tree_data: Dict = {}
        for rel in paths:
            current = tree_data
            parts = rel.split("/")
            for i, part in enumerate(parts):
                node = current.setdefault(part, {'_leaf': False, '_children': {}})
                if i == len(parts) - 1:
                    node['_leaf'] = True
                current = node['_children']
        return tree_data

    def create_action_tree(self, plan: Plan) -> Tree:
        root_name = Path(plan.project_root).name or plan.project_root
        tree = Tree(Text(f"📁 {root_name}", style="bold blue"))
        by_path = {a.path: a for a in plan.actions}

        def add_nodes(parent, data, prefix=""):
            for name in sorted(data):
                info = data[name]
                rel = f"{prefix}{name}"
                action = by_path.get(rel) if info['_leaf'] else None
                if action is None:
                    node = parent.add(Text(f"📁 {name}", style="yellow"))
                else:
                    icon, style, label = _ACTION_STYLE[action.type]
                    text = Text(f"{icon} {name}", style=style)
                    text.append(f"  [{label}]", style="dim")
                    if action.replacements:
                        text.append(f" {action.replacements} 处替换", style="dim")
                    if action.warning:
                        text.append(f"  ⚠️ {action.warning}", style="bold yellow")
                    node = parent.add(text)
                add_nodes(node, info['_children'], rel + "/")

        add_nodes(tree, self.build_tree_structure([a.path for a in plan.actions]))
        return tree

    def show_plan(self, plan: Plan) -> None:
        if plan.is_empty:
            self.console.print("[yellow]没有需要执行的动作[/yellow]")
        else:
            self.console.print(Panel.fit(
                self.create_action_tree(plan),
                title=f"[bold]转换计划 ({plan.project_type}, {plan.mode})[/bold]",
                border_style="blue",
            ))

        if plan.placeholder_map:
            table = Table(title="占位符", show_header=True, header_style="bold magenta")
            table.add_column("令牌", style="cyan")
            table.add_column("当前值", style="green")
            for token, value in plan.placeholder_map.items():
                table.add_row(Text(token), Text(value))
            self.console.print(table)

        for advisory in plan.advisories:
            self.console.print(Text(advisory, style="yellow"))

        stats = Text()
        stats.append("统计信息: ", style="bold")
        stats.append(f"{len(plan.actions_of(ACTION_MODIFY))} 个修改", style="cyan")
        stats.append(", ")
        stats.append(f"{len(plan.actions_of(ACTION_REMOVE))} 个删除", style="red")
        stats.append(", ")
        stats.append(f"{len(plan.actions_of(ACTION_CREATE))} 个创建", style="green")
        self.console.print(Panel.fit(stats, border_style="blue"))

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def show_restore_result(self, result: RestoreResult) -> None:
        title = "恢复预览" if result.dry_run else "恢复结果"
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("类别", style="cyan")
        table.add_column("数量", justify="right")
        table.add_column("路径")
        rows = [
            ("写回原内容", result.restored),
            ("删除生成文件", result.deleted),
            ("重建目录", result.recreated_dirs),
            ("回填令牌", sorted(result.substituted)),
            ("未改变", result.unchanged),
        ]
        for label, paths in rows:
            if paths:
                shown = ", ".join(paths[:5]) + (" ..." if len(paths) > 5 else "")
                table.add_row(label, str(len(paths)), Text(shown))
        self.console.print(table)

        if result.regeneration_commands:
            self.console.print("[bold]需要重新生成的内容:[/bold]")
            for command in result.regeneration_commands:
                self.console.print(f"  [green]$ {command}[/green]")
        for warning in result.warnings:
            self.console.print(Text(f"⚠️ {warning}", style="yellow"))
        for error in result.errors:
            self.console.print(Text(f"❌ {error}", style="red"))

    def show_sanitization_report(self, report: Dict[str, Any]) -> None:
        table = Table(title="脱敏报告", show_header=True, header_style="bold magenta")
        table.add_column("类别", style="cyan")
        table.add_column("说明")
        table.add_column("数量", justify="right")
        table.add_column("替换为", style="green")
        for category, detail in report.get('details', {}).items():
            replacements = sorted({item['replacement'] for item in detail.get('items', [])})
            table.add_row(category, detail.get('description', ''), str(detail.get('itemCount', 0)),
                          ", ".join(replacements))
        self.console.print(table)

        size = report.get('sizeReduction', {})
        self.console.print(
            f"共脱敏 [bold]{report.get('itemsRemoved', 0)}[/bold] 项，"
            f"大小 {size.get('originalSize', 0)} → {size.get('sanitizedSize', 0)} 字节"
        )
        if not report.get('functionalityPreserved', True):
            self.console.print("[yellow]⚠️ 部分操作路径被脱敏，恢复功能受限[/yellow]")
        for recommendation in report.get('recommendations', []):
            self.console.print(f"  • {recommendation}")

    def show_log_summary(self, summary: Dict[str, Any], log_path: Path) -> None:
        table = Table(title=f"撤销日志: {log_path}", show_header=False)
        table.add_column("字段", style="cyan")
        table.add_column("值")
        table.add_row("版本", summary['version'])
        table.add_row("时间", summary['timestamp'])
        table.add_row("项目类型", summary['projectType'])
        table.add_row("占位符", str(summary['placeholders']))
        for kind, count in summary['byKind'].items():
            table.add_row(f"操作: {kind}", str(count))
        table.add_row("已脱敏", "是" if summary['sanitized'] else "否")
        self.console.print(table)
        for command in summary['regenerationCommands']:
            self.console.print(f"  [green]$ {command}[/green]")
