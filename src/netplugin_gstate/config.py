"""Tenant-level desired state and its transformation into allocatable pools.

A :class:`Cfg` is decoded from JSON, validated, stored under
``/netplugin/config/global/<tenant>`` and processed exactly once into an
:class:`~netplugin_gstate.oper.Oper` record holding the live pools.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .bitset import Bitset
from .exceptions import ValidationError, VersionUnsupported
from .oper import BASE_GLOBAL, Oper
from .pools import NET_TYPES, init_tag_pools
from .store import StateDriver
from .subnet import subnet_pool_size
from .tagrange import parse_tag_ranges

LOG = logging.getLogger(__name__)

CFG_GLOBAL_PREFIX = BASE_GLOBAL + "config/global/"
CFG_GLOBAL_PATH = CFG_GLOBAL_PREFIX + "%s"

VERSION_BETA1 = "0.01"

# widest subnet pool, in index bits, that process() will materialise
MAX_SUBNET_POOL_BITS = 24


def _str_field(data: Dict[str, Any], name: str) -> str:
    value = data.get(name, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"field {name} must be a string, got {value!r}")
    return value


def _uint_field(data: Dict[str, Any], name: str) -> int:
    value = data.get(name, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            f"field {name} must be a non-negative integer, got {value!r}"
        )
    return value


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValidationError(f"section {name} must be a mapping")
    return section


@dataclass
class AutoParams:
    """Parameters the automatic allocators pick values from."""

    subnet_pool: str = ""
    subnet_len: int = 0
    alloc_subnet_len: int = 0
    vlans: str = ""
    vxlans: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "SubnetPool": self.subnet_pool,
            "SubnetLen": self.subnet_len,
            "AllocSubnetLen": self.alloc_subnet_len,
            "Vlans": self.vlans,
            "Vxlans": self.vxlans,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoParams":
        return cls(
            subnet_pool=_str_field(data, "SubnetPool"),
            subnet_len=_uint_field(data, "SubnetLen"),
            alloc_subnet_len=_uint_field(data, "AllocSubnetLen"),
            vlans=_str_field(data, "Vlans"),
            vxlans=_str_field(data, "Vxlans"),
        )


@dataclass
class DeployParams:
    """Deployment choices, currently only the default network type."""

    default_net_type: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"DefaultNetType": self.default_net_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployParams":
        return cls(default_net_type=_str_field(data, "DefaultNetType"))


@dataclass
class Cfg:
    """Desired global network state of one tenant."""

    version: str = ""
    tenant: str = ""
    auto: AutoParams = field(default_factory=AutoParams)
    deploy: DeployParams = field(default_factory=DeployParams)
    state_driver: Optional[StateDriver] = field(
        default=None, repr=False, compare=False
    )

    # ------------------------------------------------------------------
    # Decoding / validation
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], state_driver: Optional[StateDriver] = None
    ) -> "Cfg":
        if not isinstance(data, dict):
            raise ValidationError("global configuration must be a mapping")
        return cls(
            version=_str_field(data, "Version"),
            tenant=_str_field(data, "Tenant"),
            auto=AutoParams.from_dict(_section(data, "Auto")),
            deploy=DeployParams.from_dict(_section(data, "Deploy")),
            state_driver=state_driver,
        )

    @classmethod
    def from_json(
        cls, payload: bytes, state_driver: Optional[StateDriver] = None
    ) -> "Cfg":
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid global configuration: {exc}") from exc
        return cls.from_dict(data, state_driver)

    @classmethod
    def parse(
        cls, config_bytes: bytes, state_driver: Optional[StateDriver] = None
    ) -> "Cfg":
        """Decode and validate a configuration payload."""

        cfg = cls.from_json(config_bytes, state_driver)
        cfg.check_errors()
        return cfg

    def check_errors(self) -> None:
        try:
            ipaddress.ip_address(self.auto.subnet_pool)
        except ValueError:
            raise ValidationError(
                f"invalid ip address pool {self.auto.subnet_pool!r}"
            ) from None

        parse_tag_ranges(self.auto.vlans, "vlan")
        parse_tag_ranges(self.auto.vxlans, "vxlan")

        if self.deploy.default_net_type not in NET_TYPES:
            raise ValidationError(
                f"unsupported net type {self.deploy.default_net_type!r}"
            )

        if self.auto.subnet_len > self.auto.alloc_subnet_len:
            raise ValidationError(
                f"subnet length {self.auto.subnet_len} is longer than the "
                f"length {self.auto.alloc_subnet_len} of subnets allocated from it"
            )

    def dump(self) -> None:
        LOG.info("Global state %s", self)

    # ------------------------------------------------------------------
    # Desired -> operational
    # ------------------------------------------------------------------
    def process(self) -> Oper:
        """Build the tenant's initial operational record."""

        if self.version != VERSION_BETA1:
            raise VersionUnsupported(self.version)

        try:
            self.check_errors()
        except ValidationError as exc:
            raise ValidationError(f"process failed on error checks: {exc}") from exc

        if not self.tenant:
            raise ValidationError("null tenant")
        if "/" in self.tenant or self.tenant in (".", ".."):
            raise ValidationError(f"invalid tenant name {self.tenant!r}")

        max_prefixlen = ipaddress.ip_address(self.auto.subnet_pool).max_prefixlen
        if self.auto.alloc_subnet_len > max_prefixlen:
            raise ValidationError(
                f"allocation length {self.auto.alloc_subnet_len} exceeds "
                f"{max_prefixlen} bits of {self.auto.subnet_pool}"
            )
        pool_bits = self.auto.alloc_subnet_len - self.auto.subnet_len
        if pool_bits > MAX_SUBNET_POOL_BITS:
            raise ValidationError(
                f"subnet pool /{self.auto.subnet_len} split into "
                f"/{self.auto.alloc_subnet_len} needs {pool_bits} index bits, "
                f"more than {MAX_SUBNET_POOL_BITS}"
            )

        free_subnets = Bitset(
            subnet_pool_size(self.auto.subnet_len, self.auto.alloc_subnet_len)
        ).complement()

        try:
            free_vlans, free_local_vlans, vxlan_window, free_vxlans = init_tag_pools(
                self.auto.vlans, self.auto.vxlans, self.deploy.default_net_type
            )
        except ValidationError as exc:
            LOG.error("error '%s' initializing tag pools for %s", exc, self.tenant)
            raise

        oper = Oper(
            tenant=self.tenant,
            default_net_type=self.deploy.default_net_type,
            vlans=self.auto.vlans,
            subnet_pool=self.auto.subnet_pool,
            subnet_len=self.auto.subnet_len,
            alloc_subnet_len=self.auto.alloc_subnet_len,
            free_subnets=free_subnets,
            free_vlans=free_vlans,
            free_local_vlans=free_local_vlans,
            free_vxlans_start=vxlan_window.min,
            free_vxlans_end=vxlan_window.max,
            free_vxlans=free_vxlans,
            state_driver=self.state_driver,
        )
        LOG.info(
            "Processed global config for tenant '%s': %s",
            self.tenant,
            oper.available(),
        )
        return oper

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "Version": self.version,
            "Tenant": self.tenant,
            "Auto": self.auto.to_dict(),
            "Deploy": self.deploy.to_dict(),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @staticmethod
    def key_for(tenant: str) -> str:
        return CFG_GLOBAL_PATH % tenant

    def _driver(self) -> StateDriver:
        if self.state_driver is None:
            raise RuntimeError(f"no state driver attached to tenant {self.tenant}")
        return self.state_driver

    def write(self) -> None:
        self._driver().write_state(self.key_for(self.tenant), self, Cfg.to_json)

    @classmethod
    def read(cls, state_driver: StateDriver, tenant: str) -> "Cfg":
        return state_driver.read_state(
            cls.key_for(tenant),
            lambda payload: cls.from_json(payload, state_driver),
        )

    def clear(self) -> None:
        self._driver().clear_state(self.key_for(self.tenant))


def read_all_global_cfg(state_driver: StateDriver) -> List[Cfg]:
    """Return the configuration of every tenant in the store."""

    return [
        Cfg.from_json(payload, state_driver)
        for payload in state_driver.read_all(CFG_GLOBAL_PREFIX)
    ]
