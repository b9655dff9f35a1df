"""Owner lock: who may read and write a conversation's memory.

A store starts unlocked and is locked to the first persona that opens it in a
single-party conversation. The lock never changes afterwards.
"""

from dataclasses import dataclass
from enum import Enum

from .config import MemoryConfig
from .models import ConversationMemoryStore, PersonaId


class AccessDecision(Enum):
    """Outcome of an access check."""

    ALLOWED = "allowed"
    DISABLED = "disabled"
    MULTI_PARTY = "multi_party"
    NO_PERSONA = "no_persona"
    NOT_OWNER = "not_owner"

    @property
    def allowed(self) -> bool:
        return self is AccessDecision.ALLOWED


@dataclass(frozen=True)
class ConversationContext:
    """What the host tells us about the active conversation."""

    conversation_id: str
    persona_id: PersonaId | None = None
    is_multi_party: bool = False


def claim_owner(store: ConversationMemoryStore, context: ConversationContext) -> bool:
    """Lock an unlocked store to the context's persona.

    Fires only for a single-party conversation with a persona id.

    Returns:
        True if this call performed the transition.
    """
    if store.is_locked or context.is_multi_party or context.persona_id is None:
        return False
    store.owner_char_id = context.persona_id
    return True


def check_write(store: ConversationMemoryStore, context: ConversationContext) -> AccessDecision:
    """Decide whether the context's persona owns the store."""
    if context.is_multi_party:
        return AccessDecision.MULTI_PARTY
    if context.persona_id is None:
        return AccessDecision.NO_PERSONA
    if store.owner_char_id != context.persona_id:
        return AccessDecision.NOT_OWNER
    return AccessDecision.ALLOWED


def is_owner(store: ConversationMemoryStore, context: ConversationContext) -> bool:
    return check_write(store, context).allowed


def check_read(
    store: ConversationMemoryStore,
    context: ConversationContext,
    config: MemoryConfig,
) -> AccessDecision:
    """Decide whether facts may be injected for the context.

    Multi-party conversations never have an owner; they are governed only by
    ``config.inject_in_groups``.
    """
    if not config.enabled:
        return AccessDecision.DISABLED
    if context.is_multi_party:
        return AccessDecision.ALLOWED if config.inject_in_groups else AccessDecision.MULTI_PARTY
    return check_write(store, context)
