"""
恢复引擎测试
"""
import json

import pytest

from templatef.core.executor import Executor
from templatef.core.models import FileOperation, UndoLog
from templatef.core.placeholder import SubstitutionContext
from templatef.core.planner import build_plan
from templatef.core.restore import RestorationEngine
from templatef.core.rules import get_rule_table
from templatef.core.sanitizer import Sanitizer


@pytest.fixture
def converted(node_project, take_snapshot):
    """转换 node_project 并返回 (根目录, 撤销日志, 转换前快照)"""
    before = take_snapshot(node_project)
    plan = build_plan(node_project, "node", get_rule_table("node"), SubstitutionContext())
    result = Executor().execute(plan.with_mode("apply"))
    assert result.success
    return node_project, result.undo_log, before


def expected_after_restore(before):
    """被删除目录的内容无法恢复，只会重建为空目录"""
    return {
        rel: content for rel, content in before.items()
        if not rel.startswith(("node_modules/", "dist/"))
    }


class TestFullRestore:
    """全量恢复"""

    def test_round_trip(self, converted, take_snapshot):
        root, undo_log, before = converted
        result = RestorationEngine().restore(undo_log, root)

        assert result.success
        assert take_snapshot(root) == expected_after_restore(before)
        assert sorted(result.recreated_dirs) == ["dist", "node_modules"]
        assert result.deleted == ["template.json"]
        assert "npm install" in result.regeneration_commands
        assert result.unresolved_tokens == {}

    def test_second_restore_changes_nothing(self, converted, take_snapshot):
        root, undo_log, _ = converted
        engine = RestorationEngine()
        engine.restore(undo_log, root)
        after_first = take_snapshot(root)

        second = engine.restore(undo_log, root)

        assert second.success
        assert second.changed_count == 0
        assert take_snapshot(root) == after_first

    def test_dry_run_is_pure(self, converted, take_snapshot):
        root, undo_log, _ = converted
        before = take_snapshot(root)

        result = RestorationEngine().restore(undo_log, root, dry_run=True)

        assert result.dry_run
        assert "package.json" in result.restored
        assert result.deleted == ["template.json"]
        assert take_snapshot(root) == before

    def test_missing_modified_file_is_warning(self, converted):
        root, undo_log, _ = converted
        (root / "README.md").unlink()

        result = RestorationEngine().restore(undo_log, root)

        assert result.success
        assert any("README.md" in w for w in result.warnings)
        assert "README.md" not in result.restored

    def test_tokens_in_new_files_are_filled(self, converted):
        root, undo_log, _ = converted
        (root / "src" / "about.txt").write_text("{{PROJECT_NAME}} - {{AUTHOR}}", encoding="utf-8")

        result = RestorationEngine().restore(undo_log, root)

        assert (root / "src" / "about.txt").read_text(encoding="utf-8") == "my-app - Jane Doe"
        assert result.substituted["src/about.txt"] == 2

    def test_unknown_tokens_are_reported(self, converted):
        root, undo_log, _ = converted
        (root / "notes.md").write_text("{{PROJECT_NAME}} uses {{API_HOST}}", encoding="utf-8")

        result = RestorationEngine().restore(undo_log, root)

        assert result.unresolved_tokens == {"notes.md": ["{{API_HOST}}"]}
        assert (root / "notes.md").read_text(encoding="utf-8") == "my-app uses {{API_HOST}}"


class TestSelectiveRestore:
    """选择性恢复"""

    def test_only_selected_path(self, converted, take_snapshot):
        root, undo_log, before = converted

        result = RestorationEngine().restore(undo_log, root, selection=["package.json"])

        assert result.success
        assert result.restored == ["package.json"]
        assert (root / "package.json").read_bytes() == before["package.json"]
        assert "{{README_TITLE}}" in (root / "README.md").read_text(encoding="utf-8")
        assert not (root / "node_modules").exists()
        assert (root / "template.json").exists()

    def test_selected_directory_prefix(self, converted):
        root, undo_log, _ = converted
        result = RestorationEngine().restore(undo_log, root, selection=["node_modules/"])
        assert result.recreated_dirs == ["node_modules"]
        assert not (root / "dist").exists()

    def test_tokens_only_in_selected_file(self, tmp_path, make_files):
        make_files(tmp_path, {
            "package.json": '{"name": "{{PROJECT_NAME}}"}',
            "README.md": "# {{PROJECT_NAME}}\n",
        })
        log = UndoLog(
            version="2.0.0",
            timestamp="",
            project_type="node",
            original_values={"{{PROJECT_NAME}}": "my-app"},
        )

        result = RestorationEngine().restore(log, tmp_path, selection=["package.json"])

        assert result.success
        assert result.substituted == {"package.json": 1}
        assert (tmp_path / "package.json").read_text(encoding="utf-8") == '{"name": "my-app"}'
        assert (tmp_path / "README.md").read_text(encoding="utf-8") == "# {{PROJECT_NAME}}\n"

    def test_missing_selection_is_error(self, converted):
        root, undo_log, _ = converted
        result = RestorationEngine().restore(undo_log, root, selection=["does/not/exist.txt"])
        assert not result.success
        assert any("does/not/exist.txt" in e for e in result.errors)

    def test_missing_modified_file_in_selection_is_error(self, converted):
        root, undo_log, _ = converted
        (root / "README.md").unlink()
        result = RestorationEngine().restore(undo_log, root, selection=["README.md"])
        assert not result.success


class TestSanitizedValues:
    """已脱敏的值"""

    def _log(self, value):
        return UndoLog(
            version="2.0.0",
            timestamp="2024-01-01T00:00:00Z",
            project_type="generic",
            original_values={"{{PROJECT_NAME}}": "demo", "{{API_KEY}}": value},
            file_operations=[],
        )

    def test_sanitized_value_keeps_token(self, tmp_path):
        (tmp_path / "config.txt").write_text("{{PROJECT_NAME}} {{API_KEY}}", encoding="utf-8")

        result = RestorationEngine().restore(self._log("{{SANITIZED_API_KEY}}"), tmp_path)

        assert (tmp_path / "config.txt").read_text(encoding="utf-8") == "demo {{API_KEY}}"
        assert any("{{API_KEY}}" in w for w in result.warnings)
        assert result.unresolved_tokens == {}

    def test_supplied_value_replaces_sanitized(self, tmp_path):
        (tmp_path / "config.txt").write_text("{{API_KEY}}", encoding="utf-8")

        RestorationEngine().restore(self._log("{{SANITIZED_API_KEY}}"), tmp_path,
                                    values={"{{API_KEY}}": "real-key"})

        assert (tmp_path / "config.txt").read_text(encoding="utf-8") == "real-key"

    def _sanitized_path_log(self):
        log = UndoLog(
            version="2.0.0",
            timestamp="",
            project_type="generic",
            file_operations=[FileOperation(path="docs/Release Notes.md", kind="removed",
                                           original_content="notes\n")],
        )
        return Sanitizer().sanitize_undo_log(log).sanitized_log

    def test_sanitized_path_is_skipped_with_warning(self, tmp_path):
        log = self._sanitized_path_log()
        assert log.file_operations[0].path == "docs/{{SANITIZED_NAME}}.md"

        result = RestorationEngine().restore(log, tmp_path)

        assert result.success
        assert result.restored == []
        assert any("docs/{{SANITIZED_NAME}}.md" in w for w in result.warnings)
        assert not (tmp_path / "docs").exists()

    def test_selected_sanitized_path_is_error(self, tmp_path):
        result = RestorationEngine().restore(self._sanitized_path_log(), tmp_path, selection=["docs"])

        assert not result.success
        assert any("docs/{{SANITIZED_NAME}}.md" in e for e in result.errors)
        assert not (tmp_path / "docs").exists()

    def test_binary_files_are_skipped(self, tmp_path):
        (tmp_path / "image.bin").write_bytes(b"\xff\xd8{{PROJECT_NAME}}")
        result = RestorationEngine().restore(self._log("x"), tmp_path)
        assert result.substituted == {}
        assert (tmp_path / "image.bin").read_bytes() == b"\xff\xd8{{PROJECT_NAME}}"


class TestReplayEdgeCases:
    """回放边界情况"""

    def test_traversal_path_is_error(self, tmp_path):
        log = UndoLog(
            version="2.0.0",
            timestamp="",
            project_type="generic",
            file_operations=[FileOperation(path="../escape.txt", kind="removed", original_content="x")],
        )
        result = RestorationEngine().restore(log, tmp_path)
        assert not result.success
        assert not (tmp_path.parent / "escape.txt").exists()

    def test_removed_file_restored_in_new_parent(self, tmp_path):
        log = UndoLog(
            version="2.0.0",
            timestamp="",
            project_type="generic",
            file_operations=[FileOperation(path="config/.env", kind="removed", original_content="A=1\n")],
        )
        result = RestorationEngine().restore(log, tmp_path)
        assert result.restored == ["config/.env"]
        assert (tmp_path / "config" / ".env").read_text(encoding="utf-8") == "A=1\n"

    def test_template_metadata_is_json(self, converted):
        root, undo_log, _ = converted
        created = json.loads((root / "template.json").read_text(encoding="utf-8"))
        assert created["projectType"] == "node"
