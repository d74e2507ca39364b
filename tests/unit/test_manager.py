import json
from pathlib import Path
from threading import Thread

import pytest

from netplugin_gstate.config import Cfg
from netplugin_gstate.exceptions import NoVlansAvailable, StateNotFound, ValidationError
from netplugin_gstate.manager import TenantPoolManager
from netplugin_gstate.oper import Oper
from netplugin_gstate.store import FileStateDriver, MemoryStateDriver


def tenant_config(tenant: str, vlans: str = "100-199", net_type: str = "vlan") -> bytes:
    return json.dumps(
        {
            "Version": "0.01",
            "Tenant": tenant,
            "Auto": {
                "SubnetPool": "10.0.0.0",
                "SubnetLen": 16,
                "AllocSubnetLen": 24,
                "Vlans": vlans,
                "Vxlans": "",
            },
            "Deploy": {"DefaultNetType": net_type},
        }
    ).encode()


def build_manager() -> TenantPoolManager:
    manager = TenantPoolManager(MemoryStateDriver())
    manager.apply_config(tenant_config("blue"))
    return manager


def test_apply_config_persists_both_records():
    manager = build_manager()

    assert manager.get_config("blue").auto.vlans == "100-199"
    assert manager.get_oper("blue").free_vlans.count() == 100
    assert [cfg.tenant for cfg in manager.list_tenants()] == ["blue"]


def test_apply_config_twice_is_rejected():
    manager = build_manager()
    manager.alloc_vlan("blue")

    with pytest.raises(ValidationError):
        manager.apply_config(tenant_config("blue"))

    assert manager.get_oper("blue").free_vlans.count() == 99


def test_invalid_config_leaves_no_state():
    driver = MemoryStateDriver()
    manager = TenantPoolManager(driver)

    with pytest.raises(ValidationError):
        manager.apply_config(tenant_config("blue", net_type="gre"))

    assert driver.keys() == []


def test_allocations_are_persisted():
    manager = build_manager()

    assert manager.alloc_vlan("blue") == 100
    assert manager.alloc_vlan("blue") == 100 + 1
    assert manager.alloc_subnet("blue") == "10.0.0.0"
    assert manager.alloc_vxlan("blue") == (10000, 1)
    assert manager.alloc_local_vlan("blue") == 2

    oper = manager.get_oper("blue")
    assert not oper.free_vlans.test(100)
    assert not oper.free_subnets.test(0)
    assert not oper.free_vxlans.test(0)
    assert not oper.free_local_vlans.test(1)

    manager.free_vlan("blue", 100)
    manager.free_local_vlan("blue", 2)
    manager.free_vxlan("blue", 10000, 1)
    manager.free_subnet("blue", "10.0.0.0")
    manager.set_vlan("blue", 150)

    oper = manager.get_oper("blue")
    assert oper.free_vlans.test(100)
    assert not oper.free_vlans.test(150)
    assert oper.free_subnets.count() == 256
    assert oper.free_vxlans.test(0)


def test_failed_mutation_is_not_persisted():
    manager = TenantPoolManager(MemoryStateDriver())
    manager.apply_config(tenant_config("red", vlans="5"))
    manager.alloc_vlan("red")

    with pytest.raises(NoVlansAvailable):
        manager.alloc_vlan("red")

    with pytest.raises(ValueError):
        with manager.tenant_section("red") as oper:
            oper.free_vlan(5)
            raise ValueError("abort")

    assert not manager.get_oper("red").free_vlans.test(5)


def test_remove_tenant_clears_state():
    manager = build_manager()

    manager.remove_tenant("blue")

    with pytest.raises(StateNotFound):
        manager.get_oper("blue")
    assert manager.list_tenants() == []


def test_concurrent_allocations_are_unique(tmp_path: Path):
    manager = TenantPoolManager(FileStateDriver(tmp_path))
    manager.apply_config(tenant_config("green"))
    results = []

    def worker():
        for _ in range(10):
            results.append(manager.alloc_vlan("green"))

    threads = [Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == list(range(100, 150))
    assert Oper.read(manager.state_driver, "green").free_vlans.count() == 50


def test_remove_tenant_keeps_the_tenant_lock():
    manager = build_manager()
    lock = manager._lock_for("blue")

    manager.remove_tenant("blue")

    assert manager._lock_for("blue") is lock


def test_remove_racing_with_apply_leaves_consistent_state():
    for _ in range(20):
        driver = MemoryStateDriver()
        manager = TenantPoolManager(driver)
        manager.apply_config(tenant_config("blue"))
        applied = []

        def remover():
            manager.remove_tenant("blue")

        def applier():
            try:
                manager.apply_config(tenant_config("blue"))
            except ValidationError:
                return
            applied.append(True)

        threads = [Thread(target=remover)]
        threads += [Thread(target=applier) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        keys = set(driver.keys())
        both = {Cfg.key_for("blue"), Oper.key_for("blue")}
        assert len(applied) <= 1
        if applied:
            assert keys == both
        else:
            assert keys == set()


def test_removed_tenant_can_be_applied_again():
    manager = build_manager()
    manager.alloc_vlan("blue")

    manager.remove_tenant("blue")
    manager.apply_config(tenant_config("blue"))

    assert manager.get_oper("blue").free_vlans.count() == 100
