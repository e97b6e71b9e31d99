"""
模板服务集成测试
"""
import json

import pytest

from templatef.core.errors import ConfigurationError, NotFoundError
from templatef.core.service import TemplateService, resolve_log_path


def expected_after_restore(before):
    return {
        rel: content for rel, content in before.items()
        if not rel.startswith(("node_modules/", "dist/"))
    }


class TestConvertAndRestore:
    """转换与恢复"""

    def test_round_trip(self, node_project, take_snapshot):
        before = take_snapshot(node_project)
        service = TemplateService()

        plan = service.plan_conversion(node_project, "node")
        result = service.convert(plan)

        assert result.success
        assert result.log_path == node_project / ".template-undo.json"
        assert result.log_path.exists()
        assert result.sanitization_report is None

        restored = service.restore(node_project, delete_log=True)

        assert restored.success
        assert take_snapshot(node_project) == expected_after_restore(before)
        assert not result.log_path.exists()

    def test_selective_restore_keeps_log(self, node_project):
        service = TemplateService()
        service.convert(service.plan_conversion(node_project, "node"))

        service.restore(node_project, selection=["README.md"], delete_log=True)

        assert (node_project / ".template-undo.json").exists()
        assert (node_project / "README.md").read_text(encoding="utf-8") == "# My App\n\nmy-app by Jane Doe\n"

    def test_custom_log_path(self, node_project, tmp_path):
        service = TemplateService()
        log_path = tmp_path / "logs" / "undo.json"
        service.convert(service.plan_conversion(node_project, "node"), log_path=log_path)

        assert log_path.exists()
        assert not (node_project / ".template-undo.json").exists()
        assert service.restore(node_project, log_path=log_path).success

    def test_restore_without_log(self, tmp_path):
        with pytest.raises(NotFoundError):
            TemplateService().restore(tmp_path)

    def test_missing_project_dir(self, tmp_path):
        with pytest.raises(NotFoundError):
            TemplateService().plan_conversion(tmp_path / "nope")

    def test_explicit_inputs_and_format(self, node_project):
        plan = TemplateService().plan_conversion(node_project, "node", inputs={"AUTHOR": "Jane Doe"},
                                                 placeholder_format="__NAME__")
        assert plan.placeholder_map["__AUTHOR__"] == "Jane Doe"
        assert plan.placeholder_format == "__NAME__"


class TestSanitizedConversion:
    """带脱敏的转换"""

    def test_sanitize_then_restore_with_defaults(self, node_project):
        service = TemplateService()
        result = service.convert(service.plan_conversion(node_project, "node"), sanitize=True)

        assert "personalInfo" in result.sanitization_report["categoriesAffected"]
        shared = result.log_path.read_text(encoding="utf-8")
        assert "Jane Doe" not in shared
        assert result.sanitization_map["personalInfo"][0]["original"] in ("Jane Doe", "My App")

        assert service.missing_values(node_project) == ["{{AUTHOR}}", "{{README_TITLE}}"]

        (node_project / ".restore-defaults.json").write_text(json.dumps({
            "version": "1.0.0",
            "defaults": {"{{AUTHOR}}": "Jane Doe"},
        }), encoding="utf-8")
        assert service.missing_values(node_project) == ["{{README_TITLE}}"]

        (node_project / "CREDITS.md").write_text("{{AUTHOR}} / {{README_TITLE}}", encoding="utf-8")
        restored = service.restore(node_project)

        assert (node_project / "CREDITS.md").read_text(encoding="utf-8") == "Jane Doe / {{README_TITLE}}"
        assert any("{{README_TITLE}}" in w for w in restored.warnings)
        assert (node_project / ".restore-defaults.json").exists()

    def test_defaults_do_not_override_logged_values(self, node_project, monkeypatch):
        monkeypatch.setenv("USER", "someone")
        service = TemplateService()
        service.convert(service.plan_conversion(node_project, "node"))
        service.init_defaults(node_project)
        (node_project / "CREDITS.md").write_text("by {{AUTHOR}}", encoding="utf-8")

        service.restore(node_project)

        assert (node_project / "CREDITS.md").read_text(encoding="utf-8") == "by Jane Doe"

    def test_prompt_for_missing_follows_defaults_file(self, node_project):
        service = TemplateService()
        assert service.prompt_for_missing(node_project) is True
        (node_project / ".restore-defaults.json").write_text(json.dumps({
            "version": "1.0.0",
            "defaults": {},
            "promptForMissing": False,
        }), encoding="utf-8")
        assert service.prompt_for_missing(node_project) is False

    def test_explicit_values_beat_defaults(self, node_project):
        service = TemplateService()
        service.convert(service.plan_conversion(node_project, "node"), sanitize=True)
        (node_project / ".restore-defaults.json").write_text(json.dumps({
            "version": "1.0.0",
            "defaults": {"{{AUTHOR}}": "From Defaults"},
        }), encoding="utf-8")
        (node_project / "CREDITS.md").write_text("{{AUTHOR}}", encoding="utf-8")

        service.restore(node_project, values={"{{AUTHOR}}": "From Prompt"})

        assert (node_project / "CREDITS.md").read_text(encoding="utf-8") == "From Prompt"

    def test_sanitize_existing_log_to_output(self, node_project, tmp_path):
        service = TemplateService()
        result = service.convert(service.plan_conversion(node_project, "node"))
        original = result.log_path.read_text(encoding="utf-8")
        output = tmp_path / "shared.json"

        outcome = service.sanitize_log(result.log_path, output)

        assert result.log_path.read_text(encoding="utf-8") == original
        assert "Jane Doe" not in output.read_text(encoding="utf-8")
        assert outcome.sanitized_log.sanitized

    def test_preview_sanitization(self, node_project):
        service = TemplateService()
        result = service.convert(service.plan_conversion(node_project, "node"))
        original = result.log_path.read_text(encoding="utf-8")

        report = service.preview_sanitization(result.log_path)

        assert report["wouldSanitize"] is True
        assert result.log_path.read_text(encoding="utf-8") == original

    def test_init_defaults(self, node_project):
        service = TemplateService()
        service.convert(service.plan_conversion(node_project, "node"))

        path = service.init_defaults(node_project)
        config = json.loads(path.read_text(encoding="utf-8"))

        assert sorted(config["defaults"]) == sorted(
            ["{{PROJECT_NAME}}", "{{PROJECT_DESCRIPTION}}", "{{AUTHOR}}", "{{README_TITLE}}"])
        with pytest.raises(ConfigurationError):
            service.init_defaults(node_project)


class TestProjectConfig:
    """templatef.toml 配置"""

    def test_rule_overrides(self, node_project, make_files):
        make_files(node_project, {
            "templatef.toml": (
                "[rules.node]\n"
                'preserve = ["debug.log"]\n'
                'remove = [{ pattern = "scratch", type = "dir", regeneration_command = "make scratch" }]\n'
                'placeholders = [{ name = "LICENSE_HOLDER", fallback = "ACME" }]\n'
            ),
            "scratch/notes.txt": "tmp\n",
        })

        plan = TemplateService().plan_conversion(node_project, "node")
        removals = [a.path for a in plan.actions_of("remove")]

        assert "debug.log" not in removals
        assert "scratch" in removals
        assert plan.placeholder_map["{{LICENSE_HOLDER}}"] == "ACME"

    def test_sanitizer_section(self, node_project, make_files):
        make_files(node_project, {
            "templatef.toml": '[sanitizer]\ndisabled = ["personalInfo"]\n',
        })
        service = TemplateService()
        result = service.convert(service.plan_conversion(node_project, "node"), sanitize=True)
        assert "Jane Doe" in result.log_path.read_text(encoding="utf-8")
        assert "personalInfo" not in result.sanitization_report["categoriesAffected"]

    def test_explicit_config_must_exist(self, node_project, tmp_path):
        with pytest.raises(ConfigurationError):
            TemplateService(config_path=tmp_path / "missing.toml").plan_conversion(node_project, "node")

    def test_invalid_toml(self, node_project, make_files):
        make_files(node_project, {"templatef.toml": "[rules.node\n"})
        with pytest.raises(ConfigurationError):
            TemplateService().plan_conversion(node_project, "node")

    def test_unknown_project_type(self, node_project):
        with pytest.raises(ConfigurationError):
            TemplateService().plan_conversion(node_project, "cobol")


def test_resolve_log_path(tmp_path):
    assert resolve_log_path(tmp_path) == tmp_path / ".template-undo.json"
    log = tmp_path / "undo.json"
    assert resolve_log_path(log) == log
