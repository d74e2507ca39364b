"""Subnet index <-> address arithmetic for the subnet pool."""

from __future__ import annotations

import ipaddress
from typing import Union

from .exceptions import ConversionError

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def subnet_pool_size(subnet_len: int, alloc_subnet_len: int) -> int:
    """Number of ``/alloc_subnet_len`` subnets carved out of a ``/subnet_len``."""

    if subnet_len > alloc_subnet_len:
        raise ConversionError(
            f"subnet length {subnet_len} exceeds allocation length {alloc_subnet_len}"
        )
    return 1 << (alloc_subnet_len - subnet_len)


def _pool_network(pool: str, subnet_len: int, alloc_subnet_len: int) -> Network:
    try:
        address = ipaddress.ip_address(pool)
    except ValueError as exc:
        raise ConversionError(f"invalid subnet pool {pool!r}: {exc}") from exc

    if not 0 <= subnet_len <= alloc_subnet_len <= address.max_prefixlen:
        raise ConversionError(
            f"invalid prefix lengths {subnet_len}/{alloc_subnet_len} "
            f"for pool {pool}"
        )
    return ipaddress.ip_network(f"{address}/{subnet_len}", strict=False)


def get_subnet_ip(pool: str, subnet_len: int, alloc_subnet_len: int, index: int) -> str:
    """Return the network address of the ``index``-th allocatable subnet."""

    network = _pool_network(pool, subnet_len, alloc_subnet_len)
    size = subnet_pool_size(subnet_len, alloc_subnet_len)
    if not 0 <= index < size:
        raise ConversionError(f"subnet index {index} outside pool of {size}")

    host_bits = network.max_prefixlen - alloc_subnet_len
    return str(network.network_address + (index << host_bits))


def get_ip_number(pool: str, subnet_len: int, alloc_subnet_len: int, subnet_ip: str) -> int:
    """Inverse of :func:`get_subnet_ip`."""

    network = _pool_network(pool, subnet_len, alloc_subnet_len)
    try:
        address = ipaddress.ip_address(subnet_ip)
    except ValueError as exc:
        raise ConversionError(f"invalid subnet address {subnet_ip!r}: {exc}") from exc

    if address.version != network.version or address not in network:
        raise ConversionError(f"subnet {subnet_ip} is not inside {network}")

    offset = int(address) - int(network.network_address)
    host_bits = network.max_prefixlen - alloc_subnet_len
    if offset & ((1 << host_bits) - 1):
        raise ConversionError(
            f"subnet {subnet_ip} is not aligned to a /{alloc_subnet_len} boundary"
        )
    return offset >> host_bits
