import pytest

from podnet_ipam.errors import ExhaustedPool
from podnet_ipam.models import Subnet
from podnet_ipam.pool import SubnetPool


def test_pool_skips_network_broadcast_and_gateway():
    pool = SubnetPool(Subnet(name="s1", network="n1", cidr="10.0.0.0/29", gateway="10.0.0.1"))

    addresses = [pool.acquire() for _ in range(5)]

    assert addresses == ["10.0.0.2", "10.0.0.3", "10.0.0.4", "10.0.0.5", "10.0.0.6"]
    with pytest.raises(ExhaustedPool):
        pool.acquire()


def test_pool_honours_exclusions_and_range():
    pool = SubnetPool(
        Subnet(
            name="s1",
            network="n1",
            cidr="10.0.0.0/24",
            excluded=frozenset({"10.0.0.11"}),
            start="10.0.0.10",
            end="10.0.0.12",
        )
    )

    assert pool.usage().total == 2
    assert {pool.acquire(), pool.acquire()} == {"10.0.0.10", "10.0.0.12"}
    assert not pool.contains("10.0.0.11")
    assert not pool.contains("10.0.0.13")


def test_pool_release_makes_address_available():
    pool = SubnetPool(Subnet(name="s1", network="n1", cidr="10.0.0.0/30"))

    first = pool.acquire()
    second = pool.acquire()
    assert pool.usage().available == 0

    assert pool.release(first) is True
    assert pool.release(first) is False
    assert pool.acquire() == first
    assert pool.is_used(second)


def test_pool_reserve_detects_duplicates():
    pool = SubnetPool(Subnet(name="s1", network="n1", cidr="10.0.0.0/24"))

    assert pool.reserve("10.0.0.20") is True
    assert pool.reserve("10.0.0.20") is False
    with pytest.raises(ValueError):
        pool.reserve("10.0.0.255")


def test_pool_handles_large_ipv6_range():
    pool = SubnetPool(Subnet(name="s6", network="n1", cidr="fd00::/64", gateway="fd00::1"))

    assert pool.acquire() == "fd00::2"
    assert pool.acquire() == "fd00::3"
    assert pool.usage().used == 2
    with pytest.raises(ValueError):
        pool.reserve("10.0.0.1")
