"""Tests for the injection block."""

from char_knowledge.injection import (
    EMPTY_PLACEHOLDER,
    INJECTION_FOOTER,
    INJECTION_HEADER,
    build_injection,
)
from char_knowledge.models import make_fact


class TestBuildInjection:
    """Tests for build_injection."""

    def test_exact_text(self):
        """The block wraps one bullet per fact in the fixed header and footer."""
        facts = [
            make_fact("preference_like", "使用者喜歡：貓"),
            make_fact("preference_dislike", "使用者不喜歡：下雨"),
        ]
        assert build_injection(facts) == (
            "【權限：以下是 {{char}} 的私密內心筆記；NPC/旁白不得直接知道】\n"
            "【{{char}} 已知的使用者資訊（未列出=未知）】\n"
            "- 使用者喜歡：貓\n"
            "- 使用者不喜歡：下雨\n"
            "【用法：{{char}} 自然地參考這些資訊，不要逐條複述；其他角色不知道這些內容；未列出的事情一律當作不知道】"
        )

    def test_empty_uses_placeholder(self):
        """An empty selection renders the placeholder line."""
        lines = build_injection([]).split("\n")
        assert lines == [*INJECTION_HEADER, EMPTY_PLACEHOLDER, *INJECTION_FOOTER]

    def test_order_preserved(self):
        """Bullets follow the selection order."""
        facts = [make_fact("other", v) for v in ("c", "a", "b")]
        lines = build_injection(facts).split("\n")
        assert lines[2:5] == ["- c", "- a", "- b"]

    def test_placeholder_left_for_host(self):
        """The character macro is left for the host to expand."""
        assert "{{char}}" in build_injection([])
