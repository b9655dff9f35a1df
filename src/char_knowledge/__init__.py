"""Per-conversation character memory: rule extraction, merging and injection."""

from .config import MemoryConfig, load_config, save_config
from .errors import (
    CharKnowledgeError,
    FactNotFoundError,
    ImportValidationError,
    PersistenceError,
)
from .extractor import RuleExtractor, extract_facts
from .gate import AccessDecision, ConversationContext
from .injection import build_injection
from .manager import InjectionResult, MemoryManager, MemoryView, WriteOutcome, WriteResult
from .merge import MergeStats, merge_facts
from .models import ConversationMemoryStore, Fact, FactStatus, FactType, make_fact
from .ranking import select_facts
from .repository import InMemoryRepository, JSONFileRepository, MemoryRepository, SQLiteRepository
from .rules import DEFAULT_RULES, Rule, RuleSet

__version__ = "0.1.0"

__all__ = [
    "AccessDecision",
    "CharKnowledgeError",
    "ConversationContext",
    "ConversationMemoryStore",
    "DEFAULT_RULES",
    "Fact",
    "FactNotFoundError",
    "FactStatus",
    "FactType",
    "ImportValidationError",
    "InMemoryRepository",
    "InjectionResult",
    "JSONFileRepository",
    "MemoryConfig",
    "MemoryManager",
    "MemoryRepository",
    "MemoryView",
    "MergeStats",
    "PersistenceError",
    "Rule",
    "RuleExtractor",
    "RuleSet",
    "SQLiteRepository",
    "WriteOutcome",
    "WriteResult",
    "build_injection",
    "extract_facts",
    "load_config",
    "make_fact",
    "merge_facts",
    "save_config",
    "select_facts",
]
