"""Entry point for the standalone podnet agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from oslo_config import cfg

from podnet_events import (
    KIND_POD,
    KIND_REMOTE_SUBNET,
    KIND_REMOTE_VTEP,
    KIND_STATEFULSET,
    HandlerRegistry,
)
from podnet_events.config_extensions import register_ipam_opts
from podnet_events.handlers import (
    PodHandler,
    RemoteSubnetHandler,
    RemoteVtepHandler,
    StatefulSetHandler,
)
from podnet_ipam.allocator import AddressAllocator
from podnet_ipam.arp import ActivationValidator

from .config import AgentConfig, config_from_opts, load_config
from .records import RecordFileStore
from .watchers import FileResourceWatcher
from .workqueue import DedupQueue, QueueWorker

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _load(args: argparse.Namespace) -> AgentConfig:
    if args.oslo_config_file is not None:
        conf = register_ipam_opts(cfg.ConfigOpts())
        conf(args=[], default_config_files=[str(args.oslo_config_file)])
        return config_from_opts(conf)
    return load_config(args.config)


def build_registry(
    config: AgentConfig,
    allocator: AddressAllocator,
    queue: DedupQueue,
    store: RecordFileStore | None = None,
) -> HandlerRegistry:
    validator = None
    if config.activation.enabled:
        validator = ActivationValidator(default_timeout=config.activation.timeout)

    def _persist() -> None:
        if store is not None:
            store.save(allocator.records())

    registry = HandlerRegistry()
    registry.register(
        KIND_POD,
        PodHandler(
            allocator,
            validator=validator,
            interface=config.activation.interface,
            timeout=config.activation.timeout,
            on_records_changed=_persist,
            node_name=config.node,
        ),
    )
    registry.register(
        KIND_STATEFULSET,
        StatefulSetHandler(allocator, on_records_changed=_persist),
    )
    registry.register(KIND_REMOTE_VTEP, RemoteVtepHandler(queue))
    registry.register(KIND_REMOTE_SUBNET, RemoteSubnetHandler(queue))
    return registry


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the podnet agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/podnet/agent.yaml"),
        help="Path to the agent YAML configuration file",
    )
    parser.add_argument(
        "--oslo-config-file",
        type=Path,
        default=None,
        help="Read settings from an oslo.config INI file instead of YAML",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = _load(args)

    allocator = AddressAllocator(networks=config.networks, subnets=config.subnets)
    store = None
    if config.records_path is not None:
        store = RecordFileStore(config.records_path)
        skipped = allocator.rebuild(store.load())
        if skipped:
            LOG.warning("%d persisted records were not adopted", len(skipped))

    stop_event = Event()
    queue = DedupQueue()
    registry = build_registry(config, allocator, queue, store)

    def _resync(key: str) -> None:
        # Consumed by the forwarding-plane configurator.
        LOG.info("resync requested: %s", key)

    worker = QueueWorker(queue, _resync, stop_event)
    worker.start()

    watchers = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileResourceWatcher(
                registry=registry,
                kind=watcher_cfg.kind,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        # Perform an initial poll so we react immediately
        try:
            watcher.poll()
        except Exception:  # pragma: no cover - logged inside watcher
            LOG.exception("initial poll failed for watcher %s", watcher_cfg.path)
        watcher.start()
        watchers.append(watcher)

    if not watchers:
        LOG.warning("no watchers configured; agent will idle")

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    queue.shut_down()
    for watcher in watchers:
        watcher.join()
    worker.join()

    LOG.info("podnet agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
