"""Memory manager: the host-facing entry point.

The host reports conversation switches (``open``), user messages
(``observe``) and generation triggers (``build_prompt``); the editor side uses
``view`` plus the add/edit/delete/import/export intents. One conversation is
active at a time and its in-memory store is the source of truth; repository
flushes that fail are logged and never roll the store back.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import MemoryConfig
from .errors import FactNotFoundError
from .extractor import RuleExtractor
from .gate import AccessDecision, ConversationContext, check_read, check_write, claim_owner
from .injection import build_injection
from .logging import JSONLLogger, get_logger
from .merge import merge_fact, merge_facts
from .models import (
    DEFAULT_CONFIDENCE,
    ConversationMemoryStore,
    Fact,
    FactStatus,
    FactType,
    PersonaId,
    clamp_confidence,
    make_fact,
    normalize_tags,
)
from .ranking import select_facts
from .repository import MemoryRepository
from .rules import RuleSet
from .text import norm
from .transfer import dumps_store, import_into

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "manual"


class WriteOutcome(Enum):
    """What happened to a write request."""

    APPLIED = "applied"
    DENIED = "denied"
    DISABLED = "disabled"


@dataclass
class WriteResult:
    """Result of a write path.

    ``DENIED`` means the owner lock refused the write and nothing changed;
    ``APPLIED`` with all counts at zero means the write ran but found nothing
    to change.
    """

    outcome: WriteOutcome
    decision: AccessDecision
    facts: list[Fact] = field(default_factory=list)
    added: int = 0
    updated: int = 0
    removed: int = 0
    persisted: bool = True

    @property
    def applied(self) -> bool:
        return self.outcome is WriteOutcome.APPLIED

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


@dataclass
class InjectionResult:
    """Text to hand to the host's prompt injection, with its depth.

    Empty ``text`` means the host should clear any previous injection.
    """

    text: str
    depth: int
    decision: AccessDecision
    facts: list[Fact] = field(default_factory=list)

    @property
    def cleared(self) -> bool:
        return not self.text


@dataclass
class MemoryView:
    """Snapshot for an editor: facts, settings and owner status."""

    conversation_id: str
    owner_char_id: PersonaId | None
    is_owner: bool
    decision: AccessDecision
    facts: list[Fact]
    config: MemoryConfig


class MemoryManager:
    """Orchestrates extraction, merging, access control and injection.

    This is the main interface of the memory system, coordinating the
    repository, the extractor and the owner lock for the active conversation.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        config: MemoryConfig | None = None,
        extractor: RuleExtractor | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            repository: Where conversation records are loaded and flushed.
            config: Memory settings; defaults if None.
            extractor: Rule extractor; built from config's rule set if None.
            event_logger: Structured event log; the global one if None.
        """
        self.repository = repository
        self.config = config or MemoryConfig()
        self.extractor = extractor or RuleExtractor(RuleSet.default(self.config))
        self.events = event_logger or get_logger()
        self.context: ConversationContext | None = None
        self.store: ConversationMemoryStore | None = None
        self.last_user_text: str = ""
        self.last_flush_error: Exception | None = None

    def _require_open(self) -> tuple[ConversationMemoryStore, ConversationContext]:
        if self.store is None or self.context is None:
            raise RuntimeError("No conversation is open")
        return self.store, self.context

    async def _flush(self) -> bool:
        """Persist the active store. Failures are reported, never raised."""
        store, context = self._require_open()
        store.touch()
        try:
            await self.repository.save(context.conversation_id, store)
        except Exception as e:
            self.last_flush_error = e
            logger.error("Failed to persist memory for %s: %s", context.conversation_id, e)
            self.events.log_persist_failed(str(e), conversation_id=context.conversation_id)
            return False
        self.last_flush_error = None
        return True

    def _deny(self, action: str, decision: AccessDecision) -> WriteResult:
        _store, context = self._require_open()
        self.events.log_denied(
            action,
            decision.value,
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
        )
        return WriteResult(WriteOutcome.DENIED, decision)

    async def open(self, context: ConversationContext) -> MemoryView:
        """Switch to a conversation, claiming its owner lock if still unlocked."""
        store = await self.repository.load(context.conversation_id)
        self.context = context
        self.store = store
        self.last_user_text = ""
        self.events.set_conversation_id(context.conversation_id)

        if claim_owner(store, context):
            logger.info("Memory of %s locked to %s", context.conversation_id, context.persona_id)
            self.events.log(
                "owner_locked",
                conversation_id=context.conversation_id,
                persona_id=context.persona_id,
            )
            await self._flush()

        view = self.view()
        self.events.log(
            "conversation_opened",
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
            decision=view.decision.value,
            facts=len(store.facts),
        )
        return view

    def view(self) -> MemoryView:
        store, context = self._require_open()
        decision = check_write(store, context)
        return MemoryView(
            conversation_id=context.conversation_id,
            owner_char_id=store.owner_char_id,
            is_owner=decision.allowed,
            decision=decision,
            facts=copy.deepcopy(store.facts),
            config=self.config,
        )

    async def observe(self, text: str | None) -> WriteResult:
        """Handle a user message: extract facts and merge them if allowed.

        Args:
            text: The raw user message.

        Returns:
            WriteResult with the extracted candidates and merge counts.
        """
        store, context = self._require_open()
        self.last_user_text = norm(text)

        if not self.config.enabled or not self.config.auto_extract:
            return WriteResult(WriteOutcome.DISABLED, AccessDecision.DISABLED)

        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("observe", decision)

        candidates = self.extractor.extract(text, self.config)
        if not candidates:
            return WriteResult(WriteOutcome.APPLIED, decision)

        stats = merge_facts(store, candidates)
        persisted = await self._flush()
        self.events.log_observed(
            stats.added,
            stats.updated,
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
        )
        return WriteResult(
            WriteOutcome.APPLIED,
            decision,
            facts=candidates,
            added=stats.added,
            updated=stats.updated,
            persisted=persisted,
        )

    def build_prompt(self, query_text: str | None = None) -> InjectionResult:
        """Select facts and render the injection for a generation.

        Args:
            query_text: Text to rank against; the last observed user message
                if None.

        Returns:
            InjectionResult; its text is empty when injection is not allowed.
        """
        store, context = self._require_open()
        decision = check_read(store, context, self.config)
        if not decision.allowed:
            return InjectionResult("", self.config.depth, decision)

        query = self.last_user_text if query_text is None else query_text
        facts = select_facts(
            store,
            query,
            self.config.max_items,
            self.config.relevance,
            recency=self.config.recency_bonus,
            recency_window_days=self.config.recency_window_days,
        )
        self.events.log(
            "injection_built",
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
            decision=decision.value,
            selected=len(facts),
        )
        return InjectionResult(build_injection(facts), self.config.depth, decision, facts)

    async def add_fact(
        self,
        value: str,
        fact_type: FactType | str = FactType.OTHER,
        *,
        confidence: float = DEFAULT_CONFIDENCE,
        tags: list[str] | None = None,
        status: FactStatus | str = FactStatus.ACTIVE,
    ) -> WriteResult:
        """Manually add a fact. An existing key is merged instead of duplicated."""
        store, context = self._require_open()
        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("add", decision)

        fact = make_fact(fact_type, value, confidence, tags, source=MANUAL_SOURCE)
        fact.status = FactStatus.coerce(status)
        stats = merge_facts(store, [fact])
        stored = store.find(fact.key)
        persisted = await self._flush()
        return WriteResult(
            WriteOutcome.APPLIED,
            decision,
            facts=[stored] if stored else [],
            added=stats.added,
            updated=stats.updated,
            persisted=persisted,
        )

    async def edit_fact(
        self,
        fact_id: str,
        *,
        fact_type: FactType | str | None = None,
        value: str | None = None,
        status: FactStatus | str | None = None,
        confidence: Any = None,
        tags: list[str] | str | None = None,
        source: str | None = None,
    ) -> WriteResult:
        """Edit fields of a fact and mark it as seen.

        If the edit moves the fact onto another fact's merge key, the edited
        fact is folded into that one.

        Raises:
            FactNotFoundError: If no fact has the id.
        """
        store, context = self._require_open()
        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("edit", decision)

        fact = store.get(fact_id)
        if fact is None:
            raise FactNotFoundError(fact_id)

        if fact_type is not None:
            fact.type = FactType.coerce(fact_type)
        if value is not None:
            fact.value = norm(value)
        if status is not None:
            fact.status = FactStatus.coerce(status)
        if confidence is not None:
            fact.confidence = clamp_confidence(confidence)
        if tags is not None:
            fact.tags = normalize_tags(tags)
        if source is not None:
            fact.source = norm(source)
        fact.touch()

        result = WriteResult(WriteOutcome.APPLIED, decision, facts=[fact], updated=1)
        twin = next((f for f in store.facts if f is not fact and f.key == fact.key), None)
        if twin is not None:
            store.remove(fact.id)
            merge_fact(twin, fact)
            result.facts = [twin]
            result.removed = 1

        result.persisted = await self._flush()
        self.events.log(
            "fact_edited",
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
            fact_id=fact_id,
            merged=twin is not None,
        )
        return result

    async def delete_fact(self, fact_id: str) -> WriteResult:
        """Delete a fact by id. Unknown ids change nothing."""
        store, context = self._require_open()
        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("delete", decision)

        if not store.remove(fact_id):
            return WriteResult(WriteOutcome.APPLIED, decision)
        persisted = await self._flush()
        return WriteResult(WriteOutcome.APPLIED, decision, removed=1, persisted=persisted)

    async def clear_facts(self) -> WriteResult:
        """Delete every fact of the active conversation."""
        store, context = self._require_open()
        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("clear", decision)

        removed = store.clear()
        persisted = await self._flush()
        return WriteResult(WriteOutcome.APPLIED, decision, removed=removed, persisted=persisted)

    async def import_json(self, payload: str | bytes | dict[str, Any]) -> WriteResult:
        """Replace the facts with an imported record's facts.

        Raises:
            ImportValidationError: If the payload is malformed; nothing changes.
        """
        store, context = self._require_open()
        decision = check_write(store, context)
        if not decision.allowed:
            return self._deny("import", decision)

        previous = len(store.facts)
        stats = import_into(store, payload)
        persisted = await self._flush()
        self.events.log(
            "facts_imported",
            conversation_id=context.conversation_id,
            persona_id=context.persona_id,
            added=stats.added,
            updated=stats.updated,
        )
        return WriteResult(
            WriteOutcome.APPLIED,
            decision,
            facts=list(store.facts),
            added=stats.added,
            updated=stats.updated,
            removed=previous,
            persisted=persisted,
        )

    def export_json(self) -> str:
        """Serialize the active conversation's record."""
        store, _context = self._require_open()
        return dumps_store(store)
