"""Operational (allocatable) state of a tenant.

An :class:`Oper` record owns four pools.  Every pool bit stands for one id;
a set bit is free and a cleared bit is allocated.  Records are mutated in
place by the ``alloc_*``/``free_*`` calls and are *not* persisted
implicitly: callers write the record back after a successful mutation (see
:class:`netplugin_gstate.manager.TenantPoolManager`).

Callers must serialise access to one record; different tenants' records are
independent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .bitset import Bitset
from .exceptions import (
    ConversionError,
    NoLocalVlansAvailable,
    NoVlansAvailable,
    NoVxlansAvailable,
    SubnetExhaustion,
    TagOutOfRange,
    ValidationError,
    VlanNotAvailable,
)
from .pools import RESERVED_VLANS, vlan_ownership
from .store import StateDriver
from .subnet import get_ip_number, get_subnet_ip

LOG = logging.getLogger(__name__)

BASE_GLOBAL = "/netplugin/"
OPER_GLOBAL_PREFIX = BASE_GLOBAL + "oper/global/"
OPER_GLOBAL_PATH = OPER_GLOBAL_PREFIX + "%s"


@dataclass
class Oper:
    """Allocatable pools derived from a tenant's configuration."""

    tenant: str
    default_net_type: str
    vlans: str
    subnet_pool: str
    subnet_len: int
    alloc_subnet_len: int
    free_subnets: Bitset
    free_vlans: Bitset
    free_local_vlans: Bitset
    free_vxlans_start: int
    free_vxlans_end: int
    free_vxlans: Bitset
    state_driver: Optional[StateDriver] = field(
        default=None, repr=False, compare=False
    )

    # ------------------------------------------------------------------
    # Shared VLANs
    # ------------------------------------------------------------------
    def alloc_vlan(self) -> int:
        vlan = self.free_vlans.next_set(0)
        if vlan is None:
            raise NoVlansAvailable()
        self.free_vlans.clear(vlan)
        LOG.debug("tenant %s allocated vlan %d", self.tenant, vlan)
        return vlan

    def free_vlan(self, vlan: int) -> None:
        # freeing an already free vlan is not an error
        self._check_owned(vlan, local=False)
        self.free_vlans.set(vlan)
        LOG.debug("tenant %s freed vlan %d", self.tenant, vlan)

    def check_vlan_in_use(self, vlan: int) -> None:
        """Raise :class:`VlanNotAvailable` unless ``vlan`` can be taken."""

        if not 0 <= vlan < len(self.free_vlans) or not self.free_vlans.test(vlan):
            raise VlanNotAvailable(vlan)

    def set_vlan(self, vlan: int) -> None:
        """Mark a specific shared ``vlan`` as allocated."""

        self.check_vlan_in_use(vlan)
        self.free_vlans.clear(vlan)
        LOG.debug("tenant %s reserved vlan %d", self.tenant, vlan)

    # ------------------------------------------------------------------
    # Local VLANs
    # ------------------------------------------------------------------
    def alloc_local_vlan(self) -> int:
        vlan = self.free_local_vlans.next_set(0)
        if vlan is None:
            raise NoLocalVlansAvailable()
        self.free_local_vlans.clear(vlan)
        LOG.debug("tenant %s allocated local vlan %d", self.tenant, vlan)
        return vlan

    def free_local_vlan(self, vlan: int) -> None:
        self._check_owned(vlan, local=True)
        self.free_local_vlans.set(vlan)
        LOG.debug("tenant %s freed local vlan %d", self.tenant, vlan)

    # ------------------------------------------------------------------
    # VXLANs
    # ------------------------------------------------------------------
    def alloc_vxlan(self) -> Tuple[int, int]:
        """Allocate a VXLAN id together with the local VLAN that carries it.

        Both lookups happen before either pool is touched, so a failure on
        one pool leaves the other unchanged.
        """

        vxlan_index = self.free_vxlans.next_set(0)
        if vxlan_index is None:
            raise NoVxlansAvailable()

        local_vlan = self.free_local_vlans.next_set(0)
        if local_vlan is None:
            raise NoLocalVlansAvailable()

        self.free_local_vlans.clear(local_vlan)
        self.free_vxlans.clear(vxlan_index)
        vxlan = vxlan_index + self.free_vxlans_start
        LOG.debug(
            "tenant %s allocated vxlan %d on local vlan %d",
            self.tenant,
            vxlan,
            local_vlan,
        )
        return vxlan, local_vlan

    def free_vxlan(self, vxlan: int, local_vlan: int) -> None:
        if not self.free_vxlans_start <= vxlan <= self.free_vxlans_end:
            raise TagOutOfRange("vxlan", vxlan)
        self._check_owned(local_vlan, local=True)
        vxlan_index = vxlan - self.free_vxlans_start

        self.free_local_vlans.set(local_vlan)
        self.free_vxlans.set(vxlan_index)
        LOG.debug(
            "tenant %s freed vxlan %d and local vlan %d",
            self.tenant,
            vxlan,
            local_vlan,
        )

    def _check_owned(self, vlan: int, local: bool) -> None:
        """Reject ``vlan`` unless the pool being freed into handed it out."""

        kind = "local vlan" if local else "vlan"
        if vlan in RESERVED_VLANS or not 0 <= vlan < len(self.free_vlans):
            raise TagOutOfRange(kind, vlan)
        local_owned, shared_owned = vlan_ownership(self.vlans, self.default_net_type)
        owned = local_owned if local else shared_owned
        if not owned.test(vlan):
            raise TagOutOfRange(kind, vlan)

    # ------------------------------------------------------------------
    # Subnets
    # ------------------------------------------------------------------
    def alloc_subnet(self) -> str:
        subnet_id = self.free_subnets.next_set(0)
        if subnet_id is None:
            LOG.debug("subnet bitmap: %s", self.free_subnets.dump_as_bits())
            raise SubnetExhaustion()

        subnet_ip = get_subnet_ip(
            self.subnet_pool, self.subnet_len, self.alloc_subnet_len, subnet_id
        )
        self.free_subnets.clear(subnet_id)
        LOG.debug("tenant %s allocated subnet %s", self.tenant, subnet_ip)
        return subnet_ip

    def free_subnet(self, subnet_ip: str) -> None:
        try:
            subnet_id = get_ip_number(
                self.subnet_pool, self.subnet_len, self.alloc_subnet_len, subnet_ip
            )
        except ConversionError as exc:
            LOG.warning(
                "error '%s' getting subnet id for subnet %s/%d",
                exc,
                subnet_ip,
                self.subnet_len,
            )
            raise
        self.free_subnets.set(subnet_id)
        LOG.debug("tenant %s freed subnet %s", self.tenant, subnet_ip)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def available(self) -> Dict[str, int]:
        """Free id count per pool."""

        return {
            "subnets": self.free_subnets.count(),
            "vlans": self.free_vlans.count(),
            "local_vlans": self.free_local_vlans.count(),
            "vxlans": self.free_vxlans.count(),
        }

    # ------------------------------------------------------------------
    # Serialisation / persistence
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "Tenant": self.tenant,
            "DefaultNetType": self.default_net_type,
            "Vlans": self.vlans,
            "SubnetPool": self.subnet_pool,
            "SubnetLen": self.subnet_len,
            "AllocSubnetLen": self.alloc_subnet_len,
            "FreeSubnets": self.free_subnets.to_dict(),
            "FreeVlans": self.free_vlans.to_dict(),
            "FreeLocalVlans": self.free_local_vlans.to_dict(),
            "FreeVxlansStart": self.free_vxlans_start,
            "FreeVxlansEnd": self.free_vxlans_end,
            "FreeVxlans": self.free_vxlans.to_dict(),
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], state_driver: Optional[StateDriver] = None
    ) -> "Oper":
        try:
            return cls(
                tenant=str(data["Tenant"]),
                default_net_type=str(data["DefaultNetType"]),
                vlans=str(data["Vlans"]),
                subnet_pool=str(data["SubnetPool"]),
                subnet_len=int(data["SubnetLen"]),
                alloc_subnet_len=int(data["AllocSubnetLen"]),
                free_subnets=Bitset.from_dict(data["FreeSubnets"]),
                free_vlans=Bitset.from_dict(data["FreeVlans"]),
                free_local_vlans=Bitset.from_dict(data["FreeLocalVlans"]),
                free_vxlans_start=int(data["FreeVxlansStart"]),
                free_vxlans_end=int(data["FreeVxlansEnd"]),
                free_vxlans=Bitset.from_dict(data["FreeVxlans"]),
                state_driver=state_driver,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed operational record: {exc}") from exc

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def from_json(
        cls, payload: bytes, state_driver: Optional[StateDriver] = None
    ) -> "Oper":
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"malformed operational record: {exc}") from exc
        if not isinstance(data, dict):
            raise ValidationError("operational record must be a mapping")
        return cls.from_dict(data, state_driver)

    @staticmethod
    def key_for(tenant: str) -> str:
        return OPER_GLOBAL_PATH % tenant

    def _driver(self) -> StateDriver:
        if self.state_driver is None:
            raise RuntimeError(f"no state driver attached to tenant {self.tenant}")
        return self.state_driver

    def write(self) -> None:
        self._driver().write_state(self.key_for(self.tenant), self, Oper.to_json)

    @classmethod
    def read(cls, state_driver: StateDriver, tenant: str) -> "Oper":
        return state_driver.read_state(
            cls.key_for(tenant),
            lambda payload: cls.from_json(payload, state_driver),
        )

    def clear(self) -> None:
        self._driver().clear_state(self.key_for(self.tenant))
