"""Initialisation of the VLAN, local-VLAN and VXLAN pools.

The shared VLAN pool and the local VLAN pool are derived from the same
12-bit space.  Which ids end up where depends on the deployment mode:

* a pure VXLAN deployment with no explicit VLAN carve-out uses every
  non-reserved VLAN id as a host-local tag, and the shared pool becomes the
  complement of that (which is empty once the reserved ids are stripped);
* every other deployment reserves the configured VLAN ranges for shared use
  and hands the remaining ids to the local pool.

The VXLAN pool is a fixed 2**14 entry window; bit ``i`` stands for VXLAN id
``start + i``.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Tuple

from .bitset import Bitset
from .exceptions import ValidationError
from .tagrange import TagRange, parse_tag_ranges

LOG = logging.getLogger(__name__)

VLAN_WIDTH = 12
VXLAN_WIDTH = 14
RESERVED_VLANS: FrozenSet[int] = frozenset({0, (1 << VLAN_WIDTH) - 1})
DEFAULT_VLAN_RANGES = "1-4094"
DEFAULT_VXLAN_RANGE = TagRange(10000, 26000)

NET_TYPE_VLAN = "vlan"
NET_TYPE_VXLAN = "vxlan"
NET_TYPES = (NET_TYPE_VLAN, NET_TYPE_VXLAN)


def has_explicit_range(ranges: str) -> bool:
    return bool(ranges and ranges.strip())


def clear_reserved_vlans(pool: Bitset) -> Bitset:
    for vlan in RESERVED_VLANS:
        pool.clear(vlan)
    return pool


def init_vlan_pool(vlans: str) -> Bitset:
    """Build the shared VLAN pool from a range expression (empty = all)."""

    pool = Bitset.for_width(VLAN_WIDTH)
    if not has_explicit_range(vlans):
        vlans = DEFAULT_VLAN_RANGES
    for tag_range in parse_tag_ranges(vlans, NET_TYPE_VLAN):
        pool.set_range(tag_range.min, tag_range.max)
    return clear_reserved_vlans(pool)


def derive_local_vlan_pool(
    shared_vlans: Bitset, explicit_range_given: bool, default_net_type: str
) -> Tuple[Bitset, Bitset]:
    """Split the VLAN space into ``(local_vlans, shared_vlans)``.

    ``shared_vlans`` is never modified; both returned pools are fresh copies.
    """

    if default_net_type == NET_TYPE_VXLAN and not explicit_range_given:
        local = shared_vlans.copy()
        shared = clear_reserved_vlans(shared_vlans.complement())
    else:
        local = clear_reserved_vlans(shared_vlans.complement())
        shared = shared_vlans.copy()
    return local, shared


def vlan_ownership(vlans: str, default_net_type: str) -> Tuple[Bitset, Bitset]:
    """Return ``(local_vlans, shared_vlans)`` as initially handed out.

    Every id a pool may ever hold is set; this is the pool's membership,
    independent of what is currently allocated.
    """

    return derive_local_vlan_pool(
        init_vlan_pool(vlans), has_explicit_range(vlans), default_net_type
    )


def init_vxlan_pool(vxlans: str) -> Tuple[TagRange, Bitset]:
    """Return ``(window, pool)`` for a VXLAN range expression."""

    ranges = parse_tag_ranges(vxlans, NET_TYPE_VXLAN)
    window = ranges[0] if ranges else DEFAULT_VXLAN_RANGE

    pool = Bitset.for_width(VXLAN_WIDTH)
    if len(window) > len(pool):
        raise ValidationError(
            f"vxlan range {window.min}-{window.max} exceeds {len(pool)} ids"
        )
    pool.set_range(0, window.max - window.min)
    return window, pool


def init_tag_pools(
    vlans: str, vxlans: str, default_net_type: str
) -> Tuple[Bitset, Bitset, TagRange, Bitset]:
    """Build ``(shared_vlans, local_vlans, vxlan_window, vxlans)`` in one go."""

    vxlan_window, vxlan_pool = init_vxlan_pool(vxlans)
    local_vlans, shared_vlans = vlan_ownership(vlans, default_net_type)
    LOG.debug(
        "initialised tag pools: %d shared vlans, %d local vlans, "
        "%d vxlans from %d",
        shared_vlans.count(),
        local_vlans.count(),
        vxlan_pool.count(),
        vxlan_window.min,
    )
    return shared_vlans, local_vlans, vxlan_window, vxlan_pool
