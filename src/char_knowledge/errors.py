"""Exceptions raised by the memory system."""


class CharKnowledgeError(Exception):
    """Base class for memory errors."""

    pass


class ImportValidationError(CharKnowledgeError):
    """Raised when an import payload is malformed. The store is left untouched."""

    pass


class PersistenceError(CharKnowledgeError):
    """Raised by a repository when a record cannot be read or written."""

    pass


class FactNotFoundError(CharKnowledgeError, KeyError):
    """Raised when an edit targets a fact id that does not exist."""

    def __init__(self, fact_id: str) -> None:
        super().__init__(fact_id)
        self.fact_id = fact_id

    def __str__(self) -> str:
        return f"Fact not found: {self.fact_id}"
