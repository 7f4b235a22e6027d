"""
Selection log — every selection change is recorded as an ``added`` /
``removed`` diff so it can be replayed forwards or backwards.

The log is linear: ``cursor`` counts the actions currently applied.
Undo steps the cursor back, redo steps it forward, and recording a new
action while some are undone throws the undone ones away.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from gcodegraph.graph.models import Id, HistoryError

log = logging.getLogger("gcodegraph.selection")


class SelectMode(str, Enum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"
    TOGGLE = "toggle"


@dataclass(frozen=True)
class SelectionAction:
    """One reversible selection change."""

    added: frozenset[Id] = frozenset()
    removed: frozenset[Id] = frozenset()

    def apply(self, selection: set[Id]) -> set[Id]:
        return (selection | self.added) - self.removed

    def inverse(self) -> SelectionAction:
        return SelectionAction(added=self.removed, removed=self.added)

    @property
    def empty(self) -> bool:
        return not self.added and not self.removed


def diff_selection(old: set[Id], new: set[Id]) -> SelectionAction:
    """The effective action turning *old* into *new*."""
    return SelectionAction(added=frozenset(new - old), removed=frozenset(old - new))


def resolve_mode(current: set[Id], ids: Iterable[Id], mode: SelectMode) -> set[Id]:
    """The selection that results from applying *ids* in *mode*."""
    ids = set(ids)
    mode = SelectMode(mode)
    if mode is SelectMode.REPLACE:
        return ids
    if mode is SelectMode.ADD:
        return current | ids
    if mode is SelectMode.REMOVE:
        return current - ids
    return current ^ ids


@dataclass
class SelectionLog:
    """Current selection plus its cursor-addressed history."""

    selection: set[Id] = field(default_factory=set)
    actions: list[SelectionAction] = field(default_factory=list)
    cursor: int = 0

    @property
    def can_undo(self) -> bool:
        return self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.actions)

    @property
    def undone(self) -> int:
        """How many trailing actions are currently undone."""
        return len(self.actions) - self.cursor

    def record(self, action: SelectionAction) -> SelectionAction | None:
        """Log *action* and apply it.  Empty actions are not logged."""
        if action.empty:
            return None
        if self.can_redo:
            log.debug("Discarding %d undone selection action(s)", self.undone)
            del self.actions[self.cursor:]
        self.actions.append(action)
        self.cursor += 1
        self.selection = action.apply(self.selection)
        return action

    def change(self, new_selection: Iterable[Id]) -> SelectionAction | None:
        """Replace the selection, logging the effective diff first."""
        return self.record(diff_selection(self.selection, set(new_selection)))

    def select(self, ids: Iterable[Id], mode: SelectMode = SelectMode.REPLACE) -> SelectionAction | None:
        return self.change(resolve_mode(self.selection, ids, mode))

    def undo(self) -> SelectionAction:
        if not self.can_undo:
            raise HistoryError("undo")
        self.cursor -= 1
        action = self.actions[self.cursor].inverse()
        self.selection = action.apply(self.selection)
        return action

    def redo(self) -> SelectionAction:
        if not self.can_redo:
            raise HistoryError("redo")
        action = self.actions[self.cursor]
        self.cursor += 1
        self.selection = action.apply(self.selection)
        return action

    def reset(self) -> None:
        """Forget the selection and the whole history."""
        self.selection = set()
        self.actions.clear()
        self.cursor = 0
