"""Abstract interface for per-kind event handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EventHandler(ABC):
    """Base class for handlers managed by :class:`HandlerRegistry`."""

    @abstractmethod
    def on_create(self, obj: Any) -> None:
        """React to ``obj`` appearing."""

    @abstractmethod
    def on_update(self, old: Any, new: Any) -> None:
        """React to ``obj`` changing from ``old`` to ``new``."""

    @abstractmethod
    def on_delete(self, obj: Any) -> None:
        """Remove any state associated with ``obj``."""
