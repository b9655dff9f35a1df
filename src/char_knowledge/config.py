"""Memory configuration loader.

Loads settings from ``$CHAR_KNOWLEDGE_HOME/config.json`` (``~/.char_knowledge``
by default). Keys inside the ``memory`` section are camelCase, matching the
field names of exported memory records.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "CHAR_KNOWLEDGE_HOME"
CONFIG_ENV_VAR = "CHAR_KNOWLEDGE_CONFIG"

MAX_ITEMS_RANGE = (1, 50)
DEPTH_RANGE = (0, 20)


def default_home() -> Path:
    """Base directory for config, logs and conversation records."""
    env = os.getenv(HOME_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".char_knowledge"


def default_config_path() -> Path:
    env = os.getenv(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return default_home() / "config.json"


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return min(high, max(low, number))


@dataclass
class MemoryConfig:
    """Configuration for extraction, selection and injection.

    Attributes:
        enabled: Master switch; when off nothing is extracted or injected.
        max_items: Upper bound of facts injected per generation (1-50).
        relevance: Rank facts against the latest utterance instead of
            taking the most recent ones.
        auto_extract: Run rule extraction on incoming user messages.
        inject_in_groups: Allow injection in multi-party conversations.
        depth: Context depth handed to the host with the injection (0-20).
        min_len: Shortest payload a rule may produce.
        max_len: Longest payload before truncation with an ellipsis.
        experience_rules: Opt in to the "experience" rule family.
        recency_bonus: Add the recency term to relevance scores.
        recency_window_days: Age in days after which the recency bonus is 0.
        rule_pack_dirs: Extra directories scanned for rule pack files.
    """

    enabled: bool = True
    max_items: int = 12
    relevance: bool = True
    auto_extract: bool = True
    inject_in_groups: bool = False
    depth: int = 1
    min_len: int = 1
    max_len: int = 60
    experience_rules: bool = False
    recency_bonus: bool = True
    recency_window_days: float = 10.0
    rule_pack_dirs: list[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Clamp out-of-range values instead of rejecting them."""
        self.max_items = _clamp_int(self.max_items, *MAX_ITEMS_RANGE, default=12)
        self.depth = _clamp_int(self.depth, *DEPTH_RANGE, default=1)
        self.min_len = _clamp_int(self.min_len, 1, 10_000, default=1)
        self.max_len = _clamp_int(self.max_len, self.min_len + 1, 10_000, default=60)
        try:
            self.recency_window_days = max(0.0, float(self.recency_window_days))
        except (TypeError, ValueError, OverflowError):
            self.recency_window_days = 10.0
        self.rule_pack_dirs = [Path(p).expanduser() for p in self.rule_pack_dirs]


# (json key, attribute, type)
_FIELDS: tuple[tuple[str, str, type], ...] = (
    ("enabled", "enabled", bool),
    ("maxItems", "max_items", int),
    ("relevance", "relevance", bool),
    ("autoExtract", "auto_extract", bool),
    ("injectInGroups", "inject_in_groups", bool),
    ("depth", "depth", int),
    ("minLen", "min_len", int),
    ("maxLen", "max_len", int),
    ("experienceRules", "experience_rules", bool),
    ("recencyBonus", "recency_bonus", bool),
    ("recencyWindowDays", "recency_window_days", float),
)


def _parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower().strip()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
    return None


def _parse_config(data: dict[str, Any]) -> MemoryConfig:
    """Parse config dictionary into MemoryConfig.

    Args:
        data: Parsed JSON data.

    Returns:
        MemoryConfig instance; invalid entries keep their defaults.
    """
    section = data.get("memory", {})
    if not isinstance(section, dict):
        section = {}

    kwargs: dict[str, Any] = {}
    for json_key, attr, kind in _FIELDS:
        if json_key not in section:
            continue
        raw = section[json_key]
        if kind is bool:
            parsed = _parse_bool(raw)
            if parsed is None:
                logger.warning("Ignoring non-boolean %s: %r", json_key, raw)
                continue
            kwargs[attr] = parsed
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            kwargs[attr] = raw
        else:
            logger.warning("Ignoring non-numeric %s: %r", json_key, raw)

    dirs = section.get("rulePackDirs", [])
    if isinstance(dirs, list):
        kwargs["rule_pack_dirs"] = [Path(str(d)) for d in dirs if str(d).strip()]

    return MemoryConfig(**kwargs)


def load_config(config_path: Path | None = None) -> MemoryConfig:
    """Load MemoryConfig from a JSON file.

    The config file should have this structure:
    ```json
    {
      "memory": {
        "enabled": true,
        "maxItems": 12,
        "relevance": true,
        "injectInGroups": false,
        "rulePackDirs": ["~/.char_knowledge/rules"]
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses default_config_path() if None.

    Returns:
        MemoryConfig instance with loaded values.
    """
    path = config_path or default_config_path()

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return MemoryConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return MemoryConfig()
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return MemoryConfig()

    if not isinstance(data, dict):
        logger.warning("Config in %s is not an object. Using defaults.", path)
        return MemoryConfig()

    return _parse_config(data)


def save_config(config: MemoryConfig, config_path: Path | None = None) -> None:
    """Save MemoryConfig to a JSON file, writing only non-default values.

    Args:
        config: The config to save.
        config_path: Path to write to. Uses default_config_path() if None.
    """
    path = config_path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    defaults = MemoryConfig()
    section: dict[str, Any] = {}
    for json_key, attr, _kind in _FIELDS:
        value = getattr(config, attr)
        if value != getattr(defaults, attr):
            section[json_key] = value

    if config.rule_pack_dirs:
        section["rulePackDirs"] = [str(p) for p in config.rule_pack_dirs]

    data: dict[str, Any] = {}
    if section:
        data["memory"] = section

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise
