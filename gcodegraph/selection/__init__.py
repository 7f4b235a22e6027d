"""Selection state with a linear undo / redo history."""

from .history import SelectionAction, SelectionLog, SelectMode, diff_selection

__all__ = ["SelectionAction", "SelectionLog", "SelectMode", "diff_selection"]
