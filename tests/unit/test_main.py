import json
from pathlib import Path

from gstate_agent.main import main

TENANT_YAML = """
Version: "0.01"
Tenant: default
Auto:
  SubnetPool: 11.1.0.0
  SubnetLen: 22
  AllocSubnetLen: 24
  Vlans: 11-12
  Vxlans: 20000-20001
Deploy:
  DefaultNetType: vlan
"""


def run(tmp_path: Path, *args: str) -> int:
    return main(["--state-dir", str(tmp_path / "state"), *args])


def apply_tenant(tmp_path: Path) -> None:
    config_file = tmp_path / "tenant.yaml"
    config_file.write_text(TENANT_YAML)
    assert run(tmp_path, "apply", str(config_file)) == 0


def test_apply_and_allocate(tmp_path: Path, capsys):
    apply_tenant(tmp_path)
    capsys.readouterr()

    assert run(tmp_path, "alloc", "vlan", "default") == 0
    assert run(tmp_path, "alloc", "vxlan", "default") == 0
    assert run(tmp_path, "alloc", "subnet", "default") == 0

    out = capsys.readouterr().out.split("\n")
    assert out[0] == "11"
    assert out[1] == "20000 1"
    assert out[2] == "11.1.0.0"


def test_show_and_list(tmp_path: Path, capsys):
    apply_tenant(tmp_path)
    run(tmp_path, "alloc", "vlan", "default")
    capsys.readouterr()

    assert run(tmp_path, "show", "default") == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["config"]["Tenant"] == "default"
    assert shown["vxlan_start"] == 20000
    assert shown["vxlan_end"] == 20001
    assert shown["available"]["vlans"] == 1
    assert shown["available"]["subnets"] == 4

    assert run(tmp_path, "list") == 0
    assert capsys.readouterr().out.startswith("default\tvlan\t11.1.0.0")


def test_free_and_set_vlan(tmp_path: Path, capsys):
    apply_tenant(tmp_path)
    run(tmp_path, "alloc", "vlan", "default")

    assert run(tmp_path, "free", "vlan", "default", "11") == 0
    assert run(tmp_path, "set-vlan", "default", "11") == 0
    assert run(tmp_path, "set-vlan", "default", "11") == 1
    assert run(tmp_path, "free", "vxlan", "default", "20000") == 1
    assert "error:" in capsys.readouterr().err


def test_exhaustion_reports_error(tmp_path: Path, capsys):
    apply_tenant(tmp_path)
    for _ in range(2):
        assert run(tmp_path, "alloc", "vlan", "default") == 0

    assert run(tmp_path, "alloc", "vlan", "default") == 1
    assert "no vlans available" in capsys.readouterr().err


def test_delete_tenant(tmp_path: Path):
    apply_tenant(tmp_path)

    assert run(tmp_path, "delete", "default") == 0
    assert run(tmp_path, "show", "default") == 1


def test_memory_driver_from_agent_config(tmp_path: Path):
    agent_cfg = tmp_path / "gstate.yaml"
    agent_cfg.write_text("state:\n  driver: memory\n")

    assert main(["--config", str(agent_cfg), "list"]) == 0
