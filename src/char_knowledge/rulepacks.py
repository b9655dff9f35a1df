"""Rule packs: extra extraction rules defined in Markdown files.

A rule pack is a ``*.md`` file whose YAML frontmatter declares the rules and
whose body documents them. Uses python-frontmatter for parsing.

Example::

    ---
    name: zh-cn
    description: Simplified Chinese phrasings
    rules:
      - name: like
        type: preference_like
        pattern: "我(?:很|超|非常|最)?(?:喜欢|爱)([^，。！？\\n]{1,60})"
        template: "使用者喜歡：{}"
        confidence: 0.75
        tags: [preference]
    ---

    Notes for maintainers.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import frontmatter

from .models import DEFAULT_CONFIDENCE, FactType, clamp_confidence
from .rules import Rule, config_flag

logger = logging.getLogger(__name__)

RULE_PACK_GLOB = "*.md"


class RulePackParseError(Exception):
    """Raised when a rule pack file cannot be parsed."""

    pass


class RulePackValidationError(RulePackParseError):
    """Raised when rule pack frontmatter fails validation."""

    pass


@dataclass
class RulePack:
    """A named group of rules loaded from one file."""

    name: str
    description: str
    rules: list[Rule] = field(default_factory=list)
    enabled: bool = True
    notes: str = ""
    path: Path | None = None

    def namespaced_rules(self) -> list[Rule]:
        """Rules renamed to ``<pack>:<rule>`` so they never clash with built-ins."""
        return [replace(rule, name=f"{self.name}:{rule.name}") for rule in self.rules]


def _parse_string_or_list(value: Any) -> list[str]:
    """Parse a value that can be a comma-separated string or a list."""
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    elif isinstance(value, list):
        return [str(t).strip() for t in value if str(t).strip()]
    return []


def _parse_enabled(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower().strip() not in ("false", "no", "0", "off")
    return True


def _required_str(data: dict[str, Any], key: str, where: str) -> str:
    if key not in data:
        raise RulePackValidationError(f"{where}: missing required field: {key}")
    raw = data[key]
    if not isinstance(raw, (str, int, float)) or isinstance(raw, bool):
        raise RulePackValidationError(
            f"{where}: field '{key}' must be a string, got {type(raw).__name__}"
        )
    value = str(raw).strip()
    if not value:
        raise RulePackValidationError(f"{where}: field '{key}' cannot be empty")
    return value


def _parse_rule(data: Any, position: int) -> Rule:
    """Build a Rule from one frontmatter mapping."""
    where = f"rule #{position}"
    if not isinstance(data, dict):
        raise RulePackValidationError(f"{where}: must be a mapping")

    name = _required_str(data, "name", where)
    where = f"rule '{name}'"
    raw_type = _required_str(data, "type", where)
    try:
        fact_type = FactType(raw_type)
    except ValueError:
        raise RulePackValidationError(f"{where}: unknown fact type '{raw_type}'") from None

    pattern_text = _required_str(data, "pattern", where)
    try:
        pattern = re.compile(pattern_text)
    except re.error as e:
        raise RulePackValidationError(f"{where}: invalid pattern: {e}") from e

    template = str(data.get("template", "{}"))

    capture = data.get("capture", 1)
    if isinstance(capture, bool) or not isinstance(capture, (int, str)):
        raise RulePackValidationError(f"{where}: capture must be a group index or name")

    requires = data.get("requires")
    enabled_if = config_flag(str(requires)) if requires else None

    try:
        return Rule(
            name=name,
            fact_type=fact_type,
            pattern=pattern,
            template=template,
            confidence=clamp_confidence(data.get("confidence", DEFAULT_CONFIDENCE)),
            tags=tuple(_parse_string_or_list(data.get("tags", []))),
            capture=capture,
            exclude=tuple(_parse_string_or_list(data.get("exclude", []))),
            enabled_if=enabled_if,
        )
    except ValueError as e:
        raise RulePackValidationError(str(e)) from e


def parse_rule_pack_content(content: str, path: Path | None = None) -> RulePack:
    """Parse rule pack content.

    Args:
        content: Raw file content with YAML frontmatter.
        path: Optional path, kept for diagnostics.

    Returns:
        The parsed RulePack.

    Raises:
        RulePackParseError: If the frontmatter cannot be parsed.
        RulePackValidationError: If required fields or rules are invalid.
    """
    try:
        post = frontmatter.loads(content)
    except Exception as e:
        raise RulePackParseError(f"Failed to parse frontmatter: {e}") from e

    meta = post.metadata
    name = _required_str(meta, "name", "rule pack")
    description = _required_str(meta, "description", f"rule pack '{name}'")

    raw_rules = meta.get("rules", [])
    if not isinstance(raw_rules, list):
        raise RulePackValidationError(f"rule pack '{name}': 'rules' must be a list")

    rules = [_parse_rule(item, i) for i, item in enumerate(raw_rules, start=1)]
    names = [rule.name for rule in rules]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise RulePackValidationError(
            f"rule pack '{name}': duplicate rule names: {', '.join(duplicates)}"
        )

    return RulePack(
        name=name,
        description=description,
        rules=rules,
        enabled=_parse_enabled(meta.get("enabled", True)),
        notes=post.content.strip(),
        path=path,
    )


def parse_rule_pack_file(path: Path) -> RulePack:
    """Parse a rule pack file.

    Raises:
        RulePackParseError: If the file cannot be read or parsed.
        RulePackValidationError: If required fields are missing.
    """
    if not path.exists():
        raise RulePackParseError(f"Rule pack not found: {path}")

    if not path.is_file():
        raise RulePackParseError(f"Not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RulePackParseError(f"Cannot read rule pack {path}: {e}") from e

    return parse_rule_pack_content(content, path=path)


def _scan(directory: Path) -> Iterator[Path]:
    if not directory.is_dir():
        return
    yield from sorted(directory.glob(RULE_PACK_GLOB))


def load_rule_packs(dirs: Iterable[Path]) -> list[RulePack]:
    """Discover enabled rule packs, in directory then file-name order.

    Invalid files and packs whose name was already loaded are skipped with a
    warning.
    """
    packs: list[RulePack] = []
    seen: set[str] = set()
    for directory in dirs:
        for path in _scan(Path(directory).expanduser()):
            try:
                pack = parse_rule_pack_file(path)
            except RulePackParseError as e:
                logger.warning("Failed to load rule pack from %s: %s", path, e)
                continue
            if not pack.enabled:
                logger.debug("Rule pack %s is disabled", pack.name)
                continue
            if pack.name in seen:
                logger.warning("Duplicate rule pack '%s' in %s, skipping", pack.name, path)
                continue
            seen.add(pack.name)
            packs.append(pack)
    return packs
