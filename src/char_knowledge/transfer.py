"""Export and import of conversation memory records.

The exchange format is the persisted record itself::

    {"version": 2, "ownerCharId": <id|null>, "facts": [...], "updatedAt": <epoch-ms>}

Fact timestamps are ISO-8601 strings while the record's ``updatedAt`` is epoch
milliseconds; the asymmetry is kept for compatibility with existing exports.
"""

import json
from typing import Any

from .errors import ImportValidationError
from .merge import MergeStats, collapse_duplicates
from .models import ConversationMemoryStore, Fact


def export_store(store: ConversationMemoryStore) -> dict[str, Any]:
    return store.to_dict()


def dumps_store(store: ConversationMemoryStore) -> str:
    """Serialize a store as pretty-printed JSON."""
    return json.dumps(export_store(store), ensure_ascii=False, indent=2)


def normalize_fact(raw: dict[str, Any]) -> Fact:
    """Apply the defaults of fresh creation to an imported fact.

    Missing id is generated, confidence defaults to 0.5 and is clamped,
    missing tags/status/source/timestamps are defaulted.
    """
    return Fact.from_dict(raw)


def parse_payload(payload: str | bytes | dict[str, Any]) -> list[Fact]:
    """Validate an import payload and normalize its facts.

    Args:
        payload: JSON text or an already decoded object.

    Returns:
        Normalized facts in payload order.

    Raises:
        ImportValidationError: If the payload is not an object with a
            ``facts`` array of objects.
    """
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportValidationError(f"Invalid JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise ImportValidationError("Payload must be a JSON object")

    raw_facts = data.get("facts")
    if not isinstance(raw_facts, list):
        raise ImportValidationError("Payload is missing the 'facts' array")

    for position, item in enumerate(raw_facts):
        if not isinstance(item, dict):
            raise ImportValidationError(f"Fact #{position} is not an object")

    return [normalize_fact(item) for item in raw_facts]


def import_into(
    store: ConversationMemoryStore,
    payload: str | bytes | dict[str, Any],
) -> MergeStats:
    """Replace the store's facts with the payload's.

    Validation happens before any mutation. Facts sharing a merge key are
    collapsed into the first one. The owner lock is never touched.
    """
    facts = parse_payload(payload)
    store.clear()
    return collapse_duplicates(store, facts)
