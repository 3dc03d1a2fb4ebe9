"""
HomeBase Assistant — Scope Resolver.

Turns the human-facing scope label ("me", "all_of_us", "me_and_x") plus a
list of names into the ownership stored on a new record. Read-only: it only
looks users and group members up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.core.errors import ScopeError
from src.data.models import Ownership

if TYPE_CHECKING:
    from src.data.db import GroupDB, UserDB
    from src.data.models import User

logger = logging.getLogger(__name__)

SCOPE_ME = "me"
SCOPE_ALL_OF_US = "all_of_us"
SCOPE_ME_AND_X = "me_and_x"


@dataclass(frozen=True)
class Scope:
    """Resolved scope. Exactly one shape is populated:

    - owner only (``user_id``)
    - group only (``group_id``)
    - assignees (``assigned_user_ids``, acting user first), optionally with
      the current ``group_id``
    """

    user_id: int | None = None
    group_id: int | None = None
    assigned_user_ids: tuple[int, ...] | None = None
    user_names: dict[int, str] = field(default_factory=dict, compare=False)

    def to_ownership(self) -> Ownership:
        return Ownership(self.user_id, self.group_id, self.assigned_user_ids)


def personal_scope(user_id: int) -> Scope:
    """The implicit scope of a create with no scope label."""
    return Scope(user_id=user_id)


def _clean_name(name: str) -> str:
    return name.strip().lstrip("@").strip()


class ScopeResolver:
    """Resolves scope labels against the user and group tables."""

    def __init__(self, user_db: UserDB, group_db: GroupDB) -> None:
        self._user_db = user_db
        self._group_db = group_db

    def resolve(
        self,
        scope: str,
        names: list[str] | None,
        user_id: int,
        group_id: int | None = None,
    ) -> Scope:
        """Resolve a scope label. Raises ScopeError on any failure."""
        label = (scope or "").strip().lower()

        if label == SCOPE_ME:
            return Scope(user_id=user_id)

        if label == SCOPE_ALL_OF_US:
            if group_id is None:
                raise ScopeError(
                    "Cannot use 'all of us' outside a group chat. "
                    "Send this in the group you want to share it with."
                )
            return Scope(group_id=group_id)

        if label == SCOPE_ME_AND_X:
            return self._resolve_me_and_x(names or [], user_id, group_id)

        raise ScopeError(f"Unknown scope: {scope!r}")

    def _resolve_me_and_x(
        self, names: list[str], user_id: int, group_id: int | None,
    ) -> Scope:
        cleaned = [_clean_name(n) for n in names if n and _clean_name(n)]
        if not cleaned:
            raise ScopeError("Please name at least one person to share this with.")

        members: list[User] | None = None
        assignees = [user_id]
        user_names: dict[int, str] = {}
        unresolved: list[str] = []

        for name in cleaned:
            user = self._user_db.find_by_name(name)
            if user is None and group_id is not None:
                if members is None:
                    members = self._group_db.get_members(group_id)
                user = _match_member(name, members)
            if user is None:
                unresolved.append(name)
                continue
            user_names[user.id] = user.resolved_name
            if user.id not in assignees:
                assignees.append(user.id)

        if len(unresolved) == len(cleaned):
            raise ScopeError(f"Could not find users: {', '.join(unresolved)}")
        if unresolved:
            logger.info("Scope me_and_x: dropped unresolved names %s", unresolved)

        return Scope(
            group_id=group_id,
            assigned_user_ids=tuple(assignees),
            user_names=user_names,
        )

    def available_users(self, user_id: int, group_id: int | None = None) -> list[User]:
        """Users the acting user can name: the group's members, else just themself."""
        if group_id is not None:
            members = self._group_db.get_members(group_id)
            if members:
                return members
        user = self._user_db.get_user(user_id)
        return [user] if user is not None else []


def _match_member(name: str, members: list[User]) -> User | None:
    """Case-insensitive match of ``name`` against members' names."""
    wanted = name.casefold()
    for member in members:
        for candidate in (member.custom_name, member.display_name, member.username):
            if candidate and candidate.casefold() == wanted:
                return member
    return None
