"""
清理规划与计划组装测试
"""
import pytest

from templatef.core.errors import ConfigurationError, PathTraversalError
from templatef.core.models import CleanupRule, Plan, ProjectTree, RuleTable
from templatef.core.placeholder import SubstitutionContext
from templatef.core.planner import CleanupPlanner, build_plan, matches_pattern
from templatef.core.rules import get_rule_table


class TestMatchesPattern:
    """模式匹配"""

    @pytest.mark.parametrize("path,pattern,expected", [
        ("src/app.js", "src/", True),
        ("src", "src/", True),
        ("lib/src/app.js", "src/", False),
        ("a/b/debug.log", "*.log", True),
        ("debug.log.txt", "*.log", False),
        ("packages/web/.env", ".env", True),
        ("config/app.pem", "config/*.pem", True),
        ("other/config/app.pem", "config/*.pem", False),
        ("README.md", "readme.md", False),
    ])
    def test_matches(self, path, pattern, expected):
        assert matches_pattern(path, pattern) is expected


class TestCleanupPlanner:
    """删除动作规划"""

    def test_preserve_wins_over_remove(self):
        table = RuleTable("t", remove=(CleanupRule("*.log", type="file"),), preserve=("keep.log",))
        tree = ProjectTree(root=None, files=["keep.log", "other.log", "app.js"])
        actions, _ = CleanupPlanner(table).plan(tree)
        assert [a.path for a in actions] == ["other.log"]

    def test_removal_dir_with_preserved_descendant_is_kept(self):
        table = RuleTable("t", remove=(CleanupRule("build", type="dir"),), preserve=("build/keep.txt",))
        tree = ProjectTree(root=None, files=["build/keep.txt", "build/out.js"], dirs=["build"])
        actions, advisories = CleanupPlanner(table).plan(tree)
        assert actions == []
        assert any("build" in a and "build/keep.txt" in a for a in advisories)

    def test_sensitive_carries_warning(self):
        table = get_rule_table("node")
        tree = ProjectTree(root=None, files=[".env", "package.json"])
        actions, advisories = CleanupPlanner(table).plan(tree)
        assert [a.path for a in actions] == [".env"]
        assert actions[0].warning
        assert any(".env" in a for a in advisories)

    def test_rule_type_filters_files_and_dirs(self):
        table = RuleTable("t", remove=(CleanupRule("dist", type="dir"),))
        tree = ProjectTree(root=None, files=["dist"], dirs=[])
        actions, _ = CleanupPlanner(table).plan(tree)
        assert actions == []

    def test_children_of_removed_dir_are_not_listed(self):
        table = RuleTable("t", remove=(CleanupRule("node_modules", type="dir"), CleanupRule("*.log", type="file")))
        tree = ProjectTree(root=None, files=["node_modules/x/debug.log"], dirs=["node_modules", "node_modules/x"])
        actions, _ = CleanupPlanner(table).plan(tree)
        assert [a.path for a in actions] == ["node_modules"]
        assert actions[0].kind == "dir"

    @pytest.mark.parametrize("pattern", ["../outside", "/etc/passwd", "a/../../b"])
    def test_traversal_pattern_rejected(self, pattern):
        with pytest.raises(PathTraversalError):
            CleanupPlanner(RuleTable("t", remove=(CleanupRule(pattern),)))

    def test_override_traversal_rejected(self):
        with pytest.raises(PathTraversalError):
            get_rule_table("node", {"preserve": ["../secrets"]})

    def test_invalid_rule_type_rejected(self):
        with pytest.raises(ConfigurationError):
            get_rule_table("node", {"remove": [{"pattern": "tmp", "type": "folder"}]})

    def test_scan_does_not_descend_into_removed_dirs(self, node_project):
        tree = CleanupPlanner(get_rule_table("node")).scan(node_project)
        assert "node_modules" in tree.dirs
        assert not any(p.startswith("node_modules/") for p in tree.all_paths())
        assert "src/index.js" in tree.files


class TestBuildPlan:
    """计划组装"""

    def _plan(self, root, project_type="node"):
        table = get_rule_table(project_type)
        return build_plan(root, project_type, table, SubstitutionContext())

    def test_action_order(self, node_project):
        plan = self._plan(node_project)
        types = [a.type for a in plan.actions]
        assert types == sorted(types, key=["modify", "remove", "create"].index)

        removals = [a.path for a in plan.actions_of("remove")]
        assert removals == [".env", "debug.log", "dist", "node_modules", "package-lock.json"]
        assert [a.path for a in plan.actions_of("modify")] == ["package.json", "README.md"]
        assert [a.path for a in plan.actions_of("create")] == ["template.json"]

    def test_placeholder_map(self, node_project):
        plan = self._plan(node_project)
        assert plan.placeholder_map == {
            "{{PROJECT_NAME}}": "my-app",
            "{{PROJECT_DESCRIPTION}}": "A demo app",
            "{{AUTHOR}}": "Jane Doe",
            "{{README_TITLE}}": "My App",
        }
        readme = next(a for a in plan.actions if a.path == "README.md")
        assert readme.content == "# {{README_TITLE}}\n\n{{PROJECT_NAME}} by {{AUTHOR}}\n"
        assert readme.replacements == 3

    def test_plan_is_dry_run_and_pure(self, node_project, take_snapshot):
        before = take_snapshot(node_project)
        plan = self._plan(node_project)
        assert plan.mode == "dry-run"
        assert take_snapshot(node_project) == before

    def test_plans_differ_only_in_mode(self, node_project):
        first = self._plan(node_project)
        second = self._plan(node_project)
        assert first == second
        applied = second.with_mode("apply")
        assert applied.mode == "apply"
        assert applied.actions == first.actions
        assert applied.placeholder_map == first.placeholder_map
        assert isinstance(applied, Plan)

    def test_generic_project_uses_dirname(self, tmp_path, make_files):
        root = tmp_path / "notes"
        root.mkdir()
        make_files(root, {"README.md": "# notes\n", "Thumbs.db": "x"})
        plan = self._plan(root, "generic")
        assert plan.placeholder_map["{{PROJECT_NAME}}"] == "notes"
        assert [a.path for a in plan.actions_of("remove")] == ["Thumbs.db"]

    def test_existing_identical_template_metadata_not_recreated(self, node_project):
        plan = self._plan(node_project)
        created = plan.actions_of("create")[0]
        (node_project / "template.json").write_text(created.content, encoding="utf-8")
        again = self._plan(node_project)
        assert again.actions_of("create") == []
