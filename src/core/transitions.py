"""
Status transition tables.

Both the authorization and the claim lifecycles are expressed as data: a
mapping from each status to the set of statuses it may move to. A single
generic table type answers "may this move happen?" for either lifecycle.
"""

from enum import Enum
from typing import Generic, Iterable, Mapping, TypeVar

from src.core.errors import InvalidStatusTransitionError

S = TypeVar("S", bound=Enum)


class TransitionTable(Generic[S]):
    """Allowed-next-state table for one status enum."""

    def __init__(self, entity: str, transitions: Mapping[S, Iterable[S]]):
        self.entity = entity
        self._transitions: dict[S, frozenset[S]] = {
            status: frozenset(targets) for status, targets in transitions.items()
        }

    def can_transition(self, current: S, target: S) -> bool:
        """Check whether current -> target is listed in the table."""
        return target in self._transitions.get(current, frozenset())

    def allowed_targets(self, current: S) -> frozenset[S]:
        """Statuses reachable from current in one step."""
        return self._transitions.get(current, frozenset())

    def is_terminal(self, status: S) -> bool:
        return not self._transitions.get(status)

    def require(self, current: S, target: S) -> None:
        """Raise InvalidStatusTransitionError unless current -> target is allowed."""
        if not self.can_transition(current, target):
            raise InvalidStatusTransitionError(self.entity, current, target)

    def __contains__(self, status: object) -> bool:
        return status in self._transitions
