"""
Foreground Mode Tracker

A single flag set by the presentation layer. Listeners only hear about
actual transitions; setting the same value again does nothing.
"""

from typing import Callable
from loguru import logger

from .events import StateCell, Subscription


class ForegroundModeTracker:
    """Tracks whether the host application is in the foreground"""

    def __init__(self, foreground: bool = True):
        self._cell: StateCell[bool] = StateCell(foreground, "foreground")

    @property
    def foreground(self) -> bool:
        return self._cell.value

    def set(self, foreground: bool) -> bool:
        """
        Set the mode.

        Returns:
            True if this was a transition
        """
        changed = self._cell.set(bool(foreground))
        if changed:
            logger.info(f"App mode: {'foreground' if foreground else 'background'}")
        return changed

    def observe(self, callback: Callable[[bool], None], replay: bool = False) -> Subscription:
        """Subscribe to transitions"""
        return self._cell.subscribe(callback, replay=replay)
