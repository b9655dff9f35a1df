"""Rule-based fact extraction from user utterances."""

import logging

from .config import MemoryConfig
from .models import Fact, make_fact
from .rules import RuleSet
from .text import norm

logger = logging.getLogger(__name__)

EXTRACTED_SOURCE = "auto"


class RuleExtractor:
    """Extracts candidate facts from a single utterance using a RuleSet."""

    def __init__(self, rules: RuleSet | None = None) -> None:
        """Initialize the extractor.

        Args:
            rules: Rules to apply. Defaults to the built-in rule set.
        """
        self.rules = rules if rules is not None else RuleSet()

    def extract(self, text: str | None, config: MemoryConfig | None = None) -> list[Fact]:
        """Extract candidate facts from an utterance.

        Every enabled rule runs over the whole normalized text, so one
        utterance may yield several facts of the same type. Candidates that
        share a merge key are collapsed, keeping the first one by rule order
        and then match order.

        Args:
            text: Raw utterance text, may be empty.
            config: Current configuration; defaults apply if None.

        Returns:
            Fresh active facts, empty if nothing matched.
        """
        config = config or MemoryConfig()
        normalized = norm(text)
        if not normalized:
            return []

        facts: list[Fact] = []
        seen: set[tuple[str, str]] = set()
        for rule in self.rules.enabled_rules(config):
            for value in rule.matches(normalized, config.min_len, config.max_len):
                fact = make_fact(
                    rule.fact_type,
                    value,
                    confidence=rule.confidence,
                    tags=list(rule.tags),
                    source=EXTRACTED_SOURCE,
                )
                if fact.key in seen:
                    continue
                seen.add(fact.key)
                facts.append(fact)

        if facts:
            logger.debug("Extracted %d fact(s) from %d chars", len(facts), len(normalized))
        return facts


def extract_facts(text: str | None, config: MemoryConfig | None = None) -> list[Fact]:
    """Extract facts with the default rule set (plus configured rule packs)."""
    return RuleExtractor(RuleSet.default(config)).extract(text, config)
