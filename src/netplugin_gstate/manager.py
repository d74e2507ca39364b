"""Per-tenant serialisation of allocate/free/persist cycles."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, List, Tuple

from .config import Cfg, read_all_global_cfg
from .exceptions import StateNotFound, ValidationError
from .oper import Oper
from .store import StateDriver

LOG = logging.getLogger(__name__)


class TenantPoolManager:
    """Serialise every mutation of a tenant's pools and persist the result.

    Each tenant gets its own lock; operations on different tenants proceed
    independently.  A record is written back only after the mutation inside
    :meth:`tenant_section` completes without raising.
    """

    def __init__(self, state_driver: StateDriver) -> None:
        self._state_driver = state_driver
        self._locks: Dict[str, Lock] = {}
        self._locks_guard = Lock()

    @property
    def state_driver(self) -> StateDriver:
        return self._state_driver

    def _lock_for(self, tenant: str) -> Lock:
        # entries outlive remove_tenant so every caller serialises on one lock
        with self._locks_guard:
            return self._locks.setdefault(tenant, Lock())

    @contextmanager
    def tenant_section(self, tenant: str) -> Iterator[Oper]:
        """Yield the tenant's :class:`Oper` under its lock, then persist it."""

        with self._lock_for(tenant):
            oper = Oper.read(self._state_driver, tenant)
            yield oper
            oper.write()

    # ------------------------------------------------------------------
    # Tenant lifecycle
    # ------------------------------------------------------------------
    def apply_config(self, config_bytes: bytes) -> Oper:
        cfg = Cfg.parse(config_bytes, self._state_driver)
        oper = cfg.process()

        with self._lock_for(cfg.tenant):
            try:
                Oper.read(self._state_driver, cfg.tenant)
            except StateNotFound:
                pass
            else:
                raise ValidationError(
                    f"tenant '{cfg.tenant}' already has operational state"
                )
            cfg.write()
            oper.write()

        LOG.info("Applied global config for tenant '%s'", cfg.tenant)
        return oper

    def remove_tenant(self, tenant: str) -> None:
        with self._lock_for(tenant):
            self._state_driver.clear_state(Oper.key_for(tenant))
            self._state_driver.clear_state(Cfg.key_for(tenant))
        LOG.info("Removed global state for tenant '%s'", tenant)

    def list_tenants(self) -> List[Cfg]:
        return read_all_global_cfg(self._state_driver)

    def get_config(self, tenant: str) -> Cfg:
        return Cfg.read(self._state_driver, tenant)

    def get_oper(self, tenant: str) -> Oper:
        with self._lock_for(tenant):
            return Oper.read(self._state_driver, tenant)

    # ------------------------------------------------------------------
    # Allocation wrappers
    # ------------------------------------------------------------------
    def alloc_vlan(self, tenant: str) -> int:
        with self.tenant_section(tenant) as oper:
            vlan = oper.alloc_vlan()
        LOG.info("Allocated vlan %d for tenant '%s'", vlan, tenant)
        return vlan

    def free_vlan(self, tenant: str, vlan: int) -> None:
        with self.tenant_section(tenant) as oper:
            oper.free_vlan(vlan)

    def set_vlan(self, tenant: str, vlan: int) -> None:
        with self.tenant_section(tenant) as oper:
            oper.set_vlan(vlan)
        LOG.info("Reserved vlan %d for tenant '%s'", vlan, tenant)

    def alloc_local_vlan(self, tenant: str) -> int:
        with self.tenant_section(tenant) as oper:
            vlan = oper.alloc_local_vlan()
        LOG.info("Allocated local vlan %d for tenant '%s'", vlan, tenant)
        return vlan

    def free_local_vlan(self, tenant: str, vlan: int) -> None:
        with self.tenant_section(tenant) as oper:
            oper.free_local_vlan(vlan)

    def alloc_vxlan(self, tenant: str) -> Tuple[int, int]:
        with self.tenant_section(tenant) as oper:
            vxlan, local_vlan = oper.alloc_vxlan()
        LOG.info(
            "Allocated vxlan %d (local vlan %d) for tenant '%s'",
            vxlan,
            local_vlan,
            tenant,
        )
        return vxlan, local_vlan

    def free_vxlan(self, tenant: str, vxlan: int, local_vlan: int) -> None:
        with self.tenant_section(tenant) as oper:
            oper.free_vxlan(vxlan, local_vlan)

    def alloc_subnet(self, tenant: str) -> str:
        with self.tenant_section(tenant) as oper:
            subnet = oper.alloc_subnet()
        LOG.info("Allocated subnet %s for tenant '%s'", subnet, tenant)
        return subnet

    def free_subnet(self, tenant: str, subnet_ip: str) -> None:
        with self.tenant_section(tenant) as oper:
            oper.free_subnet(subnet_ip)
