"""Rendering of the advisory memory block handed to the host."""

from collections.abc import Sequence

from .models import Fact

CHAR_PLACEHOLDER = "{{char}}"

INJECTION_HEADER = (
    f"【權限：以下是 {CHAR_PLACEHOLDER} 的私密內心筆記；NPC/旁白不得直接知道】",
    f"【{CHAR_PLACEHOLDER} 已知的使用者資訊（未列出=未知）】",
)

EMPTY_PLACEHOLDER = "- （尚無）"

INJECTION_FOOTER = (
    f"【用法：{CHAR_PLACEHOLDER} 自然地參考這些資訊，不要逐條複述；"
    "其他角色不知道這些內容；未列出的事情一律當作不知道】",
)


def build_injection(facts: Sequence[Fact]) -> str:
    """Format selected facts as the memory block for prompt injection.

    Args:
        facts: Already selected facts, in presentation order.

    Returns:
        Header, one bullet per fact (or a placeholder line), closing guidance.
    """
    lines = [f"- {fact.value}" for fact in facts] or [EMPTY_PLACEHOLDER]
    return "\n".join([*INJECTION_HEADER, *lines, *INJECTION_FOOTER])
