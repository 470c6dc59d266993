from __future__ import annotations

from collections import deque
from typing import Dict, FrozenSet, List, Optional

from ..core.enums import TimeExceptionStatus as S
from ..core.exceptions import InvalidTransitionError

ALLOWED_TRANSITIONS: Dict[S, FrozenSet[S]] = {
    S.OPEN: frozenset({S.PENDING}),
    S.PENDING: frozenset({S.APPROVED, S.REJECTED, S.ESCALATED}),
    S.APPROVED: frozenset({S.RESOLVED}),
    S.ESCALATED: frozenset({S.PENDING, S.RESOLVED}),
    S.REJECTED: frozenset(),
    S.RESOLVED: frozenset(),
}


def can_transition(current: S, target: S) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: S, target: S) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot change time exception status from {current.value} to {target.value}")


def path_to(current: S, target: S) -> Optional[List[S]]:
    """Shortest chain of legal steps from ``current`` to ``target`` (excluding current).

    Used by system actions that must reach a state without skipping the table.
    """

    if current == target:
        return []
    seen = {current}
    queue = deque([(current, [])])
    while queue:
        state, path = queue.popleft()
        for nxt in sorted(ALLOWED_TRANSITIONS[state], key=lambda s: s.value):
            if nxt in seen:
                continue
            step = path + [nxt]
            if nxt == target:
                return step
            seen.add(nxt)
            queue.append((nxt, step))
    return None
