import pytest

from podnet_events import HandlerRegistry, ResourceCreate, ResourceDelete, ResourceUpdate
from podnet_events.handlers import EventHandler


class RecordingHandler(EventHandler):
    def __init__(self):
        self.events = []

    def on_create(self, obj):
        self.events.append(("create", obj))

    def on_update(self, old, new):
        self.events.append(("update", old, new))

    def on_delete(self, obj):
        self.events.append(("delete", obj))


def test_registry_dispatches_by_kind():
    pods = RecordingHandler()
    peers = RecordingHandler()
    registry = HandlerRegistry()
    registry.register("Pod", pods)
    registry.register("RemoteVtep", peers)

    registry.handle(ResourceCreate("Pod", "a"))
    registry.handle(ResourceUpdate("Pod", "a", "b"))
    registry.handle(ResourceDelete("RemoteVtep", "peer"))

    assert pods.events == [("create", "a"), ("update", "a", "b")]
    assert peers.events == [("delete", "peer")]
    assert registry.kinds() == ["Pod", "RemoteVtep"]


def test_registry_drops_unknown_kind():
    handler = RecordingHandler()
    registry = HandlerRegistry()
    registry.register("Pod", handler)

    registry.handle(ResourceCreate("Service", "svc"))

    assert handler.events == []


def test_registry_rejects_duplicate_registration():
    registry = HandlerRegistry()
    registry.register("Pod", RecordingHandler())

    with pytest.raises(ValueError):
        registry.register("Pod", RecordingHandler())

    registry.unregister("Pod")
    registry.register("Pod", RecordingHandler())
