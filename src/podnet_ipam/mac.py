"""MAC address generation for pod interfaces."""

from __future__ import annotations

import random


def generate_mac(rng: random.Random | None = None) -> str:
    """Return a random unicast, locally administered MAC address."""

    rng = rng or random.SystemRandom()
    octets = [rng.randint(0x00, 0xFF) for _ in range(6)]
    # Clear the multicast bit and set the locally administered bit.
    octets[0] = (octets[0] & 0xFC) | 0x02
    return ":".join(f"{octet:02x}" for octet in octets)
