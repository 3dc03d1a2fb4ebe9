"""Error taxonomy for the dispatch pipeline.

Each class maps to one kind of user-facing reply; the dispatcher does the
mapping at its boundary (see ActionDispatcher.dispatch).
"""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for every expected pipeline failure."""


class ValidationError(AssistantError):
    """A mandatory field is missing or malformed. Shown verbatim."""


class ScopeError(AssistantError):
    """Scope needs context that is absent, or named users are unknown. Shown verbatim."""


class NotFoundError(AssistantError):
    """An operation referenced a record id that does not exist."""

    def __init__(self, kind: str, record_id: int | None = None) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} #{record_id} not found")


class UnknownActionError(AssistantError):
    """The classifier produced an action or operation outside the known set."""


class ClassifierError(AssistantError):
    """The intent classification step failed or returned unparseable output."""
