"""Configuration loaders for the podnet agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml

from podnet_events.config_extensions import (
    IPAM_GROUP,
    parse_network_specs,
    parse_subnet_specs,
)
from podnet_ipam.arp import DEFAULT_TIMEOUT
from podnet_ipam.models import IPFamily, Network, NetworkType, Subnet


@dataclass
class ActivationConfig:
    enabled: bool = False
    interface: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class WatcherConfig:
    type: str
    kind: str
    path: Path
    interval: float = 5.0


@dataclass
class AgentConfig:
    node: str
    networks: Sequence[Network]
    subnets: Sequence[Subnet]
    activation: ActivationConfig = field(default_factory=ActivationConfig)
    records_path: Optional[Path] = None
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _parse_network(entry: dict) -> Network:
    families_raw: Iterable[str] | None = entry.get("families")
    if families_raw:
        families: Sequence[IPFamily] = tuple(IPFamily.parse(f) for f in families_raw)
    else:
        families = (IPFamily.IPV4,)

    return Network(
        name=str(entry["name"]),
        type=NetworkType.parse(entry["type"]),
        families=families,
    )


def _parse_subnet(entry: dict) -> Subnet:
    excluded = entry.get("excluded", [])
    if not isinstance(excluded, list):
        raise ValueError("subnet 'excluded' must be a list if provided")
    return Subnet(
        name=str(entry["name"]),
        network=str(entry["network"]),
        cidr=str(entry["cidr"]),
        gateway=str(entry["gateway"]) if entry.get("gateway") else None,
        excluded=frozenset(str(a) for a in excluded),
        start=str(entry["start"]) if entry.get("start") else None,
        end=str(entry["end"]) if entry.get("end") else None,
    )


def _parse_activation(section: dict) -> ActivationConfig:
    if not isinstance(section, dict):
        raise ValueError("'activation' section must be a mapping")
    activation = ActivationConfig(
        enabled=bool(section.get("enabled", False)),
        interface=section.get("interface"),
        timeout=float(section.get("timeout", DEFAULT_TIMEOUT)),
    )
    if activation.enabled and not activation.interface:
        raise ValueError("activation requires an 'interface' when enabled")
    return activation


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        watchers.append(
            WatcherConfig(
                type=str(entry.get("type", "file")),
                kind=str(entry["kind"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", entry.get("poll_interval", 5.0))),
            )
        )
    return watchers


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    node = data.get("node")
    if not node:
        raise ValueError("Configuration missing 'node'")

    networks_section = data.get("networks", [])
    subnets_section = data.get("subnets", [])
    if not isinstance(networks_section, list) or not isinstance(subnets_section, list):
        raise ValueError("'networks' and 'subnets' sections must be lists")

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")

    records_path = (data.get("records") or {}).get("path")

    return AgentConfig(
        node=str(node),
        networks=[_parse_network(n) for n in networks_section],
        subnets=[_parse_subnet(s) for s in subnets_section],
        activation=_parse_activation(data.get("activation", {})),
        records_path=Path(records_path) if records_path else None,
        watchers=_parse_watchers(watchers_section),
    )


def config_from_opts(conf) -> AgentConfig:
    """Build an :class:`AgentConfig` from registered oslo.config options."""

    group = getattr(conf, IPAM_GROUP)
    if not group.node_name:
        raise ValueError("oslo configuration missing [ipam] node_name")
    activation = ActivationConfig(
        enabled=group.arp_check_enabled,
        interface=group.arp_interface,
        timeout=group.arp_timeout,
    )
    if activation.enabled and not activation.interface:
        raise ValueError("[ipam] arp_interface is required when arp_check_enabled")
    return AgentConfig(
        node=group.node_name,
        networks=parse_network_specs(group.networks),
        subnets=parse_subnet_specs(group.subnets),
        activation=activation,
        records_path=Path(group.records_path) if group.records_path else None,
    )
