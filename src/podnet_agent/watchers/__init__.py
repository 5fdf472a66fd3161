"""Watcher implementations used by the podnet agent."""

from .file import FileResourceWatcher  # noqa: F401

__all__ = ["FileResourceWatcher"]
