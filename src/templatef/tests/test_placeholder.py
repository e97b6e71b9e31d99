"""
占位符解析与替换测试
"""
import json

import pytest

from templatef.core.errors import ConfigurationError
from templatef.core.models import PlaceholderRule, RuleTable
from templatef.core.placeholder import (
    PlaceholderSubstitutor,
    SubstitutionContext,
    collect_metadata,
    format_token,
    lookup,
    substitute_literals,
    token_pattern,
)
from templatef.core.rules import get_rule_table


def make_table(*rules, targets=()):
    return RuleTable(project_type="test", placeholders=tuple(rules), target_files=tuple(targets))


class TestTokens:
    """令牌格式"""

    @pytest.mark.parametrize("fmt,expected", [
        ("{{NAME}}", "{{PROJECT_NAME}}"),
        ("__NAME__", "__PROJECT_NAME__"),
        ("%NAME%", "%PROJECT_NAME%"),
    ])
    def test_format_token(self, fmt, expected):
        assert format_token("PROJECT_NAME", fmt) == expected

    def test_token_pattern_finds_names(self):
        found = token_pattern("{{NAME}}").findall("a {{FOO}} b {{BAR_2}} {{lower}}")
        assert found == ["FOO", "BAR_2"]

    def test_lookup_dotted_and_index(self):
        data = {"a": {"b": [{"c": "x"}]}}
        assert lookup(data, "a.b.0.c") == "x"
        assert lookup(data, "a.b.1.c") is None
        assert lookup(data, "a.missing") is None
        assert lookup(None, "a") is None


class TestResolve:
    """占位符值解析"""

    def test_user_input_wins(self):
        table = make_table(PlaceholderRule("PROJECT_NAME", sources=("package.json:name",), fallback="fb"))
        ctx = SubstitutionContext(inputs={"PROJECT_NAME": "explicit"},
                                  metadata={"package.json": {"name": "derived"}})
        result = PlaceholderSubstitutor({"test": table}).resolve("test", ctx)
        assert result == {"{{PROJECT_NAME}}": "explicit"}

    def test_metadata_before_fallback(self):
        table = make_table(PlaceholderRule("AUTHOR", sources=("package.json:author.name", "package.json:author"),
                                           fallback="nobody"))
        substitutor = PlaceholderSubstitutor({"test": table})

        ctx = SubstitutionContext(metadata={"package.json": {"author": "Plain Author"}})
        assert substitutor.resolve("test", ctx) == {"{{AUTHOR}}": "Plain Author"}

        ctx = SubstitutionContext(metadata={})
        assert substitutor.resolve("test", ctx) == {"{{AUTHOR}}": "nobody"}

    def test_dirname_source(self):
        table = make_table(PlaceholderRule("PROJECT_NAME", sources=("@dirname",), required=True))
        ctx = SubstitutionContext(project_dir_name="demo")
        assert PlaceholderSubstitutor({"test": table}).resolve("test", ctx) == {"{{PROJECT_NAME}}": "demo"}

    def test_required_missing_raises(self):
        table = make_table(PlaceholderRule("API_HOST", required=True))
        with pytest.raises(ConfigurationError) as exc_info:
            PlaceholderSubstitutor({"test": table}).resolve("test", SubstitutionContext())
        assert "API_HOST" in exc_info.value.message

    def test_optional_missing_is_skipped(self):
        table = make_table(PlaceholderRule("REPOSITORY_URL", sources=("package.json:repository.url",)))
        assert PlaceholderSubstitutor({"test": table}).resolve("test", SubstitutionContext()) == {}

    def test_extra_inputs_become_tokens(self):
        table = make_table()
        ctx = SubstitutionContext(inputs={"COMPANY": "Acme"}, placeholder_format="__NAME__")
        assert PlaceholderSubstitutor({"test": table}).resolve("test", ctx) == {"__COMPANY__": "Acme"}

    def test_invalid_format_raises(self):
        with pytest.raises(ConfigurationError):
            PlaceholderSubstitutor({"test": make_table()}).resolve(
                "test", SubstitutionContext(placeholder_format="NAME"))

    def test_unknown_project_type(self):
        with pytest.raises(ConfigurationError):
            PlaceholderSubstitutor().resolve("cobol", SubstitutionContext())


class TestApply:
    """目标文件替换"""

    def test_longer_values_replaced_first(self):
        mapping = {"my-app": "{{PROJECT_NAME}}", "my-app-server": "{{SERVER_NAME}}"}
        content, count = substitute_literals("my-app-server talks to my-app", mapping)
        assert content == "{{SERVER_NAME}} talks to {{PROJECT_NAME}}"
        assert count == 2

    def test_values_are_literal(self):
        content, count = substitute_literals("a.b axb", {"a.b": "{{X}}"})
        assert content == "{{X}} axb"
        assert count == 1

    def test_dry_run_does_not_write(self, tmp_path):
        (tmp_path / "README.md").write_text("hello demo, demo!", encoding="utf-8")
        (tmp_path / "other.txt").write_text("nothing here", encoding="utf-8")
        substitutor = PlaceholderSubstitutor()

        result = substitutor.apply({"{{PROJECT_NAME}}": "demo"}, ["README.md", "other.txt", "missing.txt"],
                                   tmp_path, dry_run=True)

        assert result.files_processed == 2
        assert result.replacements == 2
        assert result.per_file == {"README.md": 2, "other.txt": 0}
        assert result.contents["README.md"] == "hello {{PROJECT_NAME}}, {{PROJECT_NAME}}!"
        assert (tmp_path / "README.md").read_text(encoding="utf-8") == "hello demo, demo!"

    def test_apply_writes_when_not_dry_run(self, tmp_path):
        (tmp_path / "README.md").write_text("demo", encoding="utf-8")
        PlaceholderSubstitutor().apply({"{{PROJECT_NAME}}": "demo"}, ["README.md"], tmp_path, dry_run=False)
        assert (tmp_path / "README.md").read_text(encoding="utf-8") == "{{PROJECT_NAME}}"


class TestCollectMetadata:
    """元数据收集"""

    def test_reads_json_jsonc_and_readme(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "worker-app"}), encoding="utf-8")
        (tmp_path / "wrangler.jsonc").write_text(
            '{\n  // worker\n  "name": "worker-app",\n  /* ids */\n  "account_id": "abc123",\n'
            '  "d1_databases": [{"binding": "DB", "database_id": "db-1"}]\n}\n',
            encoding="utf-8",
        )
        (tmp_path / "README.md").write_text("Intro\n\n# Worker App\n", encoding="utf-8")

        table = get_rule_table("cf-d1")
        metadata = collect_metadata(tmp_path, table)

        assert metadata["package.json"]["name"] == "worker-app"
        assert metadata["wrangler.jsonc"]["account_id"] == "abc123"
        assert metadata["README.md"] == {"title": "Worker App"}

        ctx = SubstitutionContext(project_dir_name=tmp_path.name, metadata=metadata)
        resolved = PlaceholderSubstitutor({"cf-d1": table}).resolve("cf-d1", ctx)
        assert resolved["{{D1_DATABASE_ID}}"] == "db-1"
        assert resolved["{{D1_DATABASE_BINDING}}"] == "DB"
        assert resolved["{{WORKER_NAME}}"] == "worker-app"

    def test_invalid_json_is_skipped(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
        metadata = collect_metadata(tmp_path, get_rule_table("node"))
        assert "package.json" not in metadata
