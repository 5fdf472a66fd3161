#!/usr/bin/env python3
"""Run the pod address ARP activation checks against a live interface."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from podnet_ipam.arp import ActivationValidator, lookup_interface  # noqa: E402
from podnet_ipam.errors import ActivationError, DuplicateAddress  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("interface", help="Interface to send ARP frames from")
    parser.add_argument("address", help="IPv4 address the pod will use")
    parser.add_argument("gateway", help="IPv4 gateway of the pod subnet")
    parser.add_argument(
        "--timeout",
        type=float,
        default=3.0,
        help="Seconds each ARP step waits for a reply",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    interface = lookup_interface(args.interface)
    LOG.info("Using %s (index %d, hw %s)", interface.name, interface.index, interface.hardware_address)

    validator = ActivationValidator()
    try:
        validator.activate(interface, args.address, args.gateway, args.timeout)
    except DuplicateAddress as exc:
        LOG.error("%s already answered by %s", exc.address, exc.responder_mac)
        return 2
    except ActivationError as exc:
        LOG.error("%s", exc)
        return 1

    LOG.info("%s is ready for use on %s", args.address, interface.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
