"""Tests for rule pack parsing and discovery."""

import logging
from pathlib import Path

import pytest

from char_knowledge.config import MemoryConfig
from char_knowledge.models import FactType
from char_knowledge.rulepacks import (
    RulePackParseError,
    RulePackValidationError,
    load_rule_packs,
    parse_rule_pack_content,
    parse_rule_pack_file,
)
from char_knowledge.rules import RuleSet

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "rulepacks"


def _pack(rules_yaml: str, header: str = "name: test\ndescription: Test pack\n") -> str:
    return f"---\n{header}rules:\n{rules_yaml}---\n"


class TestParseRulePackFile:
    """Tests for parse_rule_pack_file."""

    def test_valid_pack(self):
        """Parse the bundled fixture pack."""
        pack = parse_rule_pack_file(FIXTURES_DIR / "zh_cn.md")

        assert pack.name == "zh-cn"
        assert pack.enabled is True
        assert [r.name for r in pack.rules] == ["like", "travel"]
        assert pack.rules[0].fact_type is FactType.PREFERENCE_LIKE
        assert pack.rules[0].tags == ("preference",)
        assert pack.rules[1].exclude == ()
        assert "喜欢" in pack.notes
        assert pack.path == FIXTURES_DIR / "zh_cn.md"

    def test_disabled_pack(self):
        """A pack can switch itself off."""
        pack = parse_rule_pack_file(FIXTURES_DIR / "disabled.md")
        assert pack.enabled is False

    def test_file_not_found(self):
        """Raise RulePackParseError for missing file."""
        with pytest.raises(RulePackParseError, match="not found"):
            parse_rule_pack_file(FIXTURES_DIR / "nonexistent.md")

    def test_directory_not_file(self, tmp_path):
        """Raise RulePackParseError for directory."""
        with pytest.raises(RulePackParseError, match="Not a file"):
            parse_rule_pack_file(tmp_path)


class TestParseRulePackContent:
    """Validation of frontmatter fields."""

    def test_defaults(self):
        """Optional rule fields take their defaults."""
        pack = parse_rule_pack_content(_pack("  - name: r\n    type: other\n    pattern: '(x)'\n"))
        rule = pack.rules[0]
        assert rule.template == "{}"
        assert rule.confidence == 0.5
        assert rule.capture == 1
        assert rule.enabled_if is None

    def test_no_rules(self):
        """A pack without rules is valid."""
        pack = parse_rule_pack_content("---\nname: empty\ndescription: Nothing\n---\n")
        assert pack.rules == []

    def test_missing_name(self):
        """A pack needs a name."""
        with pytest.raises(RulePackValidationError, match="missing required field: name"):
            parse_rule_pack_content("---\ndescription: No name\n---\n")

    def test_missing_description(self):
        """A pack needs a description."""
        with pytest.raises(RulePackValidationError, match="missing required field: description"):
            parse_rule_pack_content("---\nname: x\n---\n")

    def test_rules_not_a_list(self):
        """rules must be a list."""
        with pytest.raises(RulePackValidationError, match="must be a list"):
            parse_rule_pack_content("---\nname: x\ndescription: y\nrules: nope\n---\n")

    def test_rule_not_a_mapping(self):
        """Each rule must be a mapping."""
        with pytest.raises(RulePackValidationError, match="rule #1: must be a mapping"):
            parse_rule_pack_content(_pack("  - just a string\n"))

    def test_unknown_type(self):
        """Rule types must be known fact types."""
        with pytest.raises(RulePackValidationError, match="unknown fact type 'mood'"):
            parse_rule_pack_content(_pack("  - name: r\n    type: mood\n    pattern: '(x)'\n"))

    def test_invalid_pattern(self):
        """Patterns that do not compile are rejected."""
        with pytest.raises(RulePackValidationError, match="invalid pattern"):
            parse_rule_pack_content(_pack("  - name: r\n    type: other\n    pattern: '(x'\n"))

    def test_template_without_placeholder(self):
        """Templates need a slot for the payload."""
        text = _pack("  - name: r\n    type: other\n    pattern: '(x)'\n    template: fixed\n")
        with pytest.raises(RulePackValidationError, match="template"):
            parse_rule_pack_content(text)

    def test_bad_capture(self):
        """Capturing a missing group is rejected."""
        text = _pack("  - name: r\n    type: other\n    pattern: '(x)'\n    capture: 3\n")
        with pytest.raises(RulePackValidationError, match="captures group 3"):
            parse_rule_pack_content(text)

    def test_negative_capture(self):
        """A negative group index is rejected when the pack is parsed."""
        text = _pack("  - name: r\n    type: other\n    pattern: '(x)'\n    capture: -1\n")
        with pytest.raises(RulePackValidationError, match="captures group -1"):
            parse_rule_pack_content(text)

    def test_duplicate_rule_names(self):
        """Rule names are unique within a pack."""
        rule = "  - name: r\n    type: other\n    pattern: '(x)'\n"
        with pytest.raises(RulePackValidationError, match="duplicate rule names: r"):
            parse_rule_pack_content(_pack(rule + rule))

    def test_broken_frontmatter(self):
        """Unparseable YAML raises a parse error."""
        with pytest.raises(RulePackParseError):
            parse_rule_pack_content("---\nname: [unclosed\n---\n")


class TestLoadRulePacks:
    """Tests for load_rule_packs discovery."""

    def test_skips_disabled(self):
        """Disabled packs are not loaded."""
        packs = load_rule_packs([FIXTURES_DIR])
        assert [p.name for p in packs] == ["zh-cn"]

    def test_missing_directory(self, tmp_path):
        """A missing directory contributes no packs."""
        assert load_rule_packs([tmp_path / "missing"]) == []

    def test_skips_invalid_with_warning(self, tmp_path, caplog):
        """Invalid packs are skipped with a warning."""
        (tmp_path / "bad.md").write_text("---\ndescription: no name\n---\n", encoding="utf-8")
        (tmp_path / "good.md").write_text(_pack("  - name: r\n    type: other\n    pattern: '(x)'\n"), encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="char_knowledge.rulepacks"):
            packs = load_rule_packs([tmp_path])

        assert [p.name for p in packs] == ["test"]
        assert "bad.md" in caplog.text

    def test_first_pack_name_wins(self, tmp_path):
        """The first directory wins when pack names clash."""
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        (first / "p.md").write_text(_pack("  - name: one\n    type: other\n    pattern: '(x)'\n"), encoding="utf-8")
        (second / "p.md").write_text(_pack("  - name: two\n    type: other\n    pattern: '(y)'\n"), encoding="utf-8")

        packs = load_rule_packs([first, second])

        assert len(packs) == 1
        assert packs[0].rules[0].name == "one"

    def test_namespaced_in_rule_set(self):
        """Pack rules join the set under their pack name."""
        rules = RuleSet.default(MemoryConfig(rule_pack_dirs=[FIXTURES_DIR]))
        names = rules.names()
        assert "zh-cn:like" in names
        assert "zh-cn:travel" in names
        assert "like" in names
        assert not any(n.startswith("disabled-pack:") for n in names)
