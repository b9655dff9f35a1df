"""Tests for the owner lock and access decisions."""

import pytest

from char_knowledge.config import MemoryConfig
from char_knowledge.gate import (
    AccessDecision,
    ConversationContext,
    check_read,
    check_write,
    claim_owner,
    is_owner,
)
from char_knowledge.models import ConversationMemoryStore


def _ctx(persona="alice", group=False):
    return ConversationContext("chat-1", persona_id=persona, is_multi_party=group)


class TestClaimOwner:
    """Tests for the Unlocked -> Locked transition."""

    def test_first_single_party_access_locks(self):
        """The first persona in a one-on-one chat becomes the owner."""
        store = ConversationMemoryStore()
        assert claim_owner(store, _ctx("alice"))
        assert store.owner_char_id == "alice"
        assert store.is_locked

    def test_lock_never_changes(self):
        """A later persona cannot take over the lock."""
        store = ConversationMemoryStore()
        claim_owner(store, _ctx("alice"))
        assert not claim_owner(store, _ctx("bob"))
        assert store.owner_char_id == "alice"

    def test_multi_party_never_locks(self):
        """Group chats never set an owner."""
        store = ConversationMemoryStore()
        assert not claim_owner(store, _ctx("alice", group=True))
        assert not store.is_locked

    def test_no_persona_never_locks(self):
        """An anonymous context never sets an owner."""
        store = ConversationMemoryStore()
        assert not claim_owner(store, _ctx(None))
        assert not store.is_locked

    def test_numeric_persona(self):
        """Numeric persona ids are compared without string coercion."""
        store = ConversationMemoryStore()
        claim_owner(store, _ctx(7))
        assert store.owner_char_id == 7
        assert is_owner(store, _ctx(7))
        assert not is_owner(store, _ctx("7"))


class TestCheckWrite:
    """Tests for check_write / is_owner."""

    @pytest.fixture
    def store(self):
        """A store locked to alice."""
        return ConversationMemoryStore(owner_char_id="alice")

    def test_owner(self, store):
        """The owner may write."""
        assert check_write(store, _ctx("alice")) is AccessDecision.ALLOWED
        assert is_owner(store, _ctx("alice"))

    def test_other_persona(self, store):
        """A different persona may not write."""
        assert check_write(store, _ctx("bob")) is AccessDecision.NOT_OWNER

    def test_multi_party_even_for_owner(self, store):
        """Even the owner cannot write from a group chat."""
        assert check_write(store, _ctx("alice", group=True)) is AccessDecision.MULTI_PARTY
        assert not is_owner(store, _ctx("alice", group=True))

    def test_no_persona(self, store):
        """A context without a persona may not write."""
        assert check_write(store, _ctx(None)) is AccessDecision.NO_PERSONA

    def test_unlocked_store_denies(self):
        """Nobody writes to a store that has no owner yet."""
        assert check_write(ConversationMemoryStore(), _ctx("alice")) is AccessDecision.NOT_OWNER


class TestCheckRead:
    """Tests for check_read."""

    def test_disabled(self):
        """Reads are refused while memory is disabled."""
        store = ConversationMemoryStore(owner_char_id="alice")
        decision = check_read(store, _ctx("alice"), MemoryConfig(enabled=False))
        assert decision is AccessDecision.DISABLED
        assert not decision.allowed

    def test_owner_reads(self):
        """The owner may read."""
        store = ConversationMemoryStore(owner_char_id="alice")
        assert check_read(store, _ctx("alice"), MemoryConfig()).allowed

    def test_non_owner_cannot_read(self):
        """Other personas get nothing injected."""
        store = ConversationMemoryStore(owner_char_id="alice")
        assert check_read(store, _ctx("bob"), MemoryConfig()) is AccessDecision.NOT_OWNER

    def test_groups_blocked_by_default(self):
        """Group chats do not read memory by default."""
        store = ConversationMemoryStore()
        assert check_read(store, _ctx("alice", group=True), MemoryConfig()) is AccessDecision.MULTI_PARTY

    def test_groups_opt_in(self):
        """injectInGroups allows group reads without an owner check."""
        store = ConversationMemoryStore()
        config = MemoryConfig(inject_in_groups=True)
        assert check_read(store, _ctx(None, group=True), config).allowed
