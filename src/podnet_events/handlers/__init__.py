"""Per-kind event handlers registered with :class:`HandlerRegistry`."""

from .base import EventHandler  # noqa: F401
from .pod import PodHandler  # noqa: F401
from .remote import RemoteSubnetHandler, RemoteVtepHandler  # noqa: F401
from .statefulset import StatefulSetHandler  # noqa: F401

__all__ = [
    "EventHandler",
    "PodHandler",
    "RemoteSubnetHandler",
    "RemoteVtepHandler",
    "StatefulSetHandler",
]
