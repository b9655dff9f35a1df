"""Declarative extraction rules.

Each rule is a regex plus the metadata needed to turn one captured span into
a fact. The engine in ``extractor.py`` runs every enabled rule the same way,
so new phrasings or locales only add rows to a table (or a rule pack file).
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import FactType
from .text import clip

if TYPE_CHECKING:
    from .config import MemoryConfig

# First-person subject.
_SUBJ = r"(?:我|俺|本人)"
# Payload characters: a span stops at clause or sentence punctuation.
_P = r"[^，,。！？!?；;\n]"
# Names stop at whitespace too.
_NAME = r"[^\s，,。！？!?；;\n]"

WANT_VERBS = ("想要", "想買", "想入手", "想得到", "想收到")


def config_flag(name: str) -> Callable[[MemoryConfig], bool]:
    """Predicate enabling a rule only when a boolean config attribute is set."""

    def predicate(config: MemoryConfig) -> bool:
        return bool(getattr(config, name, False))

    predicate.__name__ = f"config_flag_{name}"
    return predicate


@dataclass(frozen=True)
class Rule:
    """A single extraction rule.

    Attributes:
        name: Unique rule name within a rule set.
        fact_type: Type given to produced facts.
        pattern: Regex run against the normalized utterance.
        template: Fact value format; ``{}`` is replaced by the payload.
        confidence: Base confidence of produced facts.
        tags: Tags attached to produced facts.
        capture: Group index or name holding the payload.
        exclude: A payload containing any of these substrings is skipped.
        enabled_if: Optional predicate over the current config.
    """

    name: str
    fact_type: FactType
    pattern: re.Pattern[str]
    template: str
    confidence: float
    tags: tuple[str, ...] = ()
    capture: int | str = 1
    exclude: tuple[str, ...] = ()
    enabled_if: Callable[[MemoryConfig], bool] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.pattern, str):
            object.__setattr__(self, "pattern", re.compile(self.pattern))
        object.__setattr__(self, "fact_type", FactType(self.fact_type))
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "exclude", tuple(self.exclude))
        if "{}" not in self.template:
            raise ValueError(f"Rule '{self.name}' template must contain '{{}}'")
        if isinstance(self.capture, int) and not 0 <= self.capture <= self.pattern.groups:
            raise ValueError(
                f"Rule '{self.name}' captures group {self.capture} "
                f"but the pattern has groups 0-{self.pattern.groups}"
            )
        if isinstance(self.capture, str) and self.capture not in self.pattern.groupindex:
            raise ValueError(f"Rule '{self.name}' has no group named '{self.capture}'")

    def is_enabled(self, config: MemoryConfig) -> bool:
        return self.enabled_if is None or self.enabled_if(config)

    def matches(self, text: str, min_len: int = 1, max_len: int = 60) -> Iterator[str]:
        """Yield fact values for every non-overlapping match, in order."""
        for match in self.pattern.finditer(text):
            payload = clip(match.group(self.capture), min_len, max_len)
            if payload is None:
                continue
            if any(word in payload for word in self.exclude):
                continue
            yield self.template.replace("{}", payload)


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        name="like",
        fact_type=FactType.PREFERENCE_LIKE,
        pattern=rf"{_SUBJ}\s*(很|超|非常|最)?\s*(喜歡|喜愛|愛|偏好)\s*({_P}+)",
        template="使用者喜歡：{}",
        confidence=0.75,
        tags=("preference",),
        capture=3,
    ),
    Rule(
        name="dislike",
        fact_type=FactType.PREFERENCE_DISLIKE,
        pattern=rf"{_SUBJ}\s*(很|超|非常|最)?\s*(不喜歡|討厭|不愛|雷)\s*({_P}+)",
        template="使用者不喜歡：{}",
        confidence=0.75,
        tags=("boundary",),
        capture=3,
    ),
    Rule(
        name="interest",
        fact_type=FactType.INTEREST,
        pattern=rf"{_SUBJ}\s*(最近在|在|對)?\s*(學|研究|玩|看|追|有興趣)\s*({_P}+)",
        template="使用者的興趣/在做：{}",
        confidence=0.65,
        tags=("interest",),
        capture=3,
    ),
    Rule(
        name="interest_in",
        fact_type=FactType.INTEREST,
        pattern=rf"{_SUBJ}\s*對\s*({_P}+?)\s*(?:很|超|非常)?\s*(?:有興趣|感興趣)",
        template="使用者的興趣/在做：{}",
        confidence=0.65,
        tags=("interest",),
    ),
    Rule(
        name="want",
        fact_type=FactType.WANT,
        pattern=rf"{_SUBJ}\s*(很|超|非常)?\s*(想要|想買|想入手|想得到|想收到)\s*({_P}+)",
        template="使用者想要：{}",
        confidence=0.7,
        tags=("want",),
        capture=3,
    ),
    Rule(
        name="plan",
        fact_type=FactType.GOAL_PLAN,
        pattern=rf"{_SUBJ}\s*(?:打算|計畫|計劃|準備|決定|預計|的目標是|目標是)\s*({_P}+)",
        template="使用者的目標/計畫：{}",
        confidence=0.65,
        tags=("goal",),
        exclude=WANT_VERBS,
    ),
    Rule(
        name="habit",
        fact_type=FactType.HABIT,
        pattern=rf"{_SUBJ}\s*((?:每天|每週|每周|每晚|每個月|經常|常常|通常|總是|習慣)\s*{_P}+)",
        template="使用者的習慣：{}",
        confidence=0.6,
        tags=("habit",),
    ),
    Rule(
        name="role",
        fact_type=FactType.SKILL_ROLE,
        pattern=rf"{_SUBJ}\s*(?:是|當)\s*(?:一名|一位|一個|個)\s*({_P}+)",
        template="使用者的身分/技能：{}",
        confidence=0.65,
        tags=("identity",),
    ),
    Rule(
        name="workplace",
        fact_type=FactType.SKILL_ROLE,
        pattern=rf"{_SUBJ}\s*(在{_P}+?(?:工作|上班|實習|念書|讀書))",
        template="使用者的身分/技能：{}",
        confidence=0.6,
        tags=("identity",),
    ),
    Rule(
        name="skill",
        fact_type=FactType.SKILL_ROLE,
        pattern=rf"{_SUBJ}\s*((?:擅長|很會|精通)\s*{_P}+)",
        template="使用者的身分/技能：{}",
        confidence=0.65,
        tags=("skill",),
    ),
    Rule(
        name="relationship",
        fact_type=FactType.RELATIONSHIP,
        pattern=(
            rf"{_SUBJ}的\s*((?:老婆|老公|太太|先生|妻子|丈夫|女朋友|男朋友|女友|男友|伴侶"
            rf"|媽媽|爸爸|母親|父親|哥哥|姊姊|姐姐|弟弟|妹妹|兒子|女兒|孩子|小孩"
            rf"|好朋友|朋友|室友|貓|狗|寵物)\s*(?:叫做|叫|是)\s*{_P}+)"
        ),
        template="使用者的人際/家人：{}",
        confidence=0.6,
        tags=("relationship",),
    ),
    Rule(
        name="pet",
        fact_type=FactType.RELATIONSHIP,
        pattern=rf"{_SUBJ}\s*(養了?\s*{_P}+)",
        template="使用者的人際/家人：{}",
        confidence=0.6,
        tags=("relationship",),
    ),
    Rule(
        name="boundary",
        fact_type=FactType.BOUNDARY,
        pattern=rf"(?:請你?|拜託你?|麻煩你?)\s*((?:不要|別)\s*{_P}+)",
        template="使用者的界線：{}",
        confidence=0.8,
        tags=("boundary",),
    ),
    Rule(
        name="boundary_topic",
        fact_type=FactType.BOUNDARY,
        pattern=rf"{_SUBJ}\s*((?:不想|不願意)\s*(?:聊|談|提|討論|被){_P}+)",
        template="使用者的界線：{}",
        confidence=0.8,
        tags=("boundary",),
    ),
    Rule(
        name="experience",
        fact_type=FactType.EXPERIENCE,
        pattern=(
            rf"{_SUBJ}\s*(?:曾經|以前|之前|小時候|去年)\s*"
            rf"((?:去過|住過|做過|當過|養過|學過|待過|參加過|得過){_P}+)"
        ),
        template="使用者的經歷：{}",
        confidence=0.55,
        tags=("experience",),
        enabled_if=config_flag("experience_rules"),
    ),
    Rule(
        name="identity_name",
        fact_type=FactType.IDENTITY_NAME,
        pattern=rf"(?<!不要)(?<!別)(?<!再)(叫我|我叫|稱呼我|你可以叫我)\s*({_NAME}+)",
        template="使用者希望被稱呼為：{}",
        confidence=0.7,
        tags=("identity",),
        capture=2,
    ),
)


class RuleSet:
    """An ordered, immutable collection of rules.

    Order matters: it decides which candidate survives deduplication within
    one extraction call.
    """

    def __init__(self, rules: Iterable[Rule] = DEFAULT_RULES) -> None:
        self._rules: tuple[Rule, ...] = tuple(rules)
        names = [rule.name for rule in self._rules]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate rule names: {', '.join(duplicates)}")

    @classmethod
    def default(cls, config: MemoryConfig | None = None) -> RuleSet:
        """Built-in rules followed by rules from configured rule packs."""
        if config is None or not config.rule_pack_dirs:
            return cls(DEFAULT_RULES)

        from .rulepacks import load_rule_packs

        extra: list[Rule] = []
        for pack in load_rule_packs(config.rule_pack_dirs):
            extra.extend(pack.namespaced_rules())
        return cls([*DEFAULT_RULES, *extra])

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, name: str) -> Rule | None:
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def names(self) -> list[str]:
        return [rule.name for rule in self._rules]

    def enabled_rules(self, config: MemoryConfig) -> list[Rule]:
        return [rule for rule in self._rules if rule.is_enabled(config)]
