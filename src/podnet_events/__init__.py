"""Event dispatch between the watch layer and the address components.

Watchers publish :class:`ResourceCreate`, :class:`ResourceUpdate` and
:class:`ResourceDelete` events.  :class:`HandlerRegistry` hands each event to
the handler registered for its resource kind, and the handlers call into
:mod:`podnet_ipam` (allocation, retention, activation) or push resync keys to
a work queue (remote topology).
"""

from .events import (  # noqa: F401
    KIND_POD,
    KIND_REMOTE_SUBNET,
    KIND_REMOTE_VTEP,
    KIND_STATEFULSET,
    PodInfo,
    ResourceCreate,
    ResourceDelete,
    ResourceUpdate,
    StatefulSetInfo,
)
from .registry import HandlerRegistry  # noqa: F401

__all__ = [
    "HandlerRegistry",
    "KIND_POD",
    "KIND_REMOTE_SUBNET",
    "KIND_REMOTE_VTEP",
    "KIND_STATEFULSET",
    "PodInfo",
    "ResourceCreate",
    "ResourceDelete",
    "ResourceUpdate",
    "StatefulSetInfo",
]
