"""Tenant global network state for a container-networking control plane.

A tenant's declarative configuration (:class:`~netplugin_gstate.config.Cfg`)
is validated and transformed once into an operational record
(:class:`~netplugin_gstate.oper.Oper`) that owns the live allocation pools:

* subnets carved out of the tenant's address pool;
* shared VLAN ids;
* host-local VLAN ids; and
* VXLAN ids, always handed out together with a local VLAN.

All pools are first-fit: the lowest free id is returned, so allocation
sequences are reproducible.  Records are persisted through a
:class:`~netplugin_gstate.store.StateDriver`, and
:class:`~netplugin_gstate.manager.TenantPoolManager` serialises every
allocate/free/persist cycle per tenant.
"""

from .config import AutoParams, Cfg, DeployParams, read_all_global_cfg  # noqa: F401
from .manager import TenantPoolManager  # noqa: F401
from .oper import Oper  # noqa: F401
from .store import FileStateDriver, MemoryStateDriver, StateDriver  # noqa: F401

__all__ = [
    "AutoParams",
    "Cfg",
    "DeployParams",
    "FileStateDriver",
    "MemoryStateDriver",
    "Oper",
    "StateDriver",
    "TenantPoolManager",
    "read_all_global_cfg",
]
