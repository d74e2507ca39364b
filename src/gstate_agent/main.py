"""Entry point for the gstate operator tool."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Dict

import yaml

from netplugin_gstate.exceptions import GStateError
from netplugin_gstate.manager import TenantPoolManager

from .config import AgentConfig, load_config

LOG = logging.getLogger(__name__)

RESOURCES = ("vlan", "local-vlan", "vxlan", "subnet")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _read_tenant_config(path: Path) -> bytes:
    """Return JSON bytes for a tenant config written in JSON or YAML."""

    text = path.read_text()
    if path.suffix in (".yaml", ".yml"):
        return json.dumps(yaml.safe_load(text)).encode("utf-8")
    return text.encode("utf-8")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage tenant VLAN/VXLAN/subnet pools"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Override the state directory of the file driver",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    apply_cmd = sub.add_parser("apply", help="Apply a tenant global config")
    apply_cmd.add_argument("file", type=Path)

    show_cmd = sub.add_parser("show", help="Show a tenant and its free pools")
    show_cmd.add_argument("tenant")

    sub.add_parser("list", help="List configured tenants")

    alloc_cmd = sub.add_parser("alloc", help="Allocate a resource")
    alloc_cmd.add_argument("resource", choices=RESOURCES)
    alloc_cmd.add_argument("tenant")

    free_cmd = sub.add_parser("free", help="Release a resource")
    free_cmd.add_argument("resource", choices=RESOURCES)
    free_cmd.add_argument("tenant")
    free_cmd.add_argument(
        "values",
        nargs="+",
        help="id to free; 'free vxlan' takes VXLAN and LOCAL_VLAN",
    )

    set_cmd = sub.add_parser("set-vlan", help="Reserve a specific shared vlan")
    set_cmd.add_argument("tenant")
    set_cmd.add_argument("vlan", type=int)

    delete_cmd = sub.add_parser("delete", help="Remove a tenant's global state")
    delete_cmd.add_argument("tenant")

    return parser


def _cmd_apply(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    oper = manager.apply_config(_read_tenant_config(args.file))
    print(f"tenant {oper.tenant} configured")


def _cmd_show(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    cfg = manager.get_config(args.tenant)
    oper = manager.get_oper(args.tenant)
    print(
        json.dumps(
            {
                "config": cfg.to_dict(),
                "vxlan_start": oper.free_vxlans_start,
                "vxlan_end": oper.free_vxlans_end,
                "available": oper.available(),
            },
            indent=2,
            sort_keys=True,
        )
    )


def _cmd_list(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    for cfg in manager.list_tenants():
        print(f"{cfg.tenant}\t{cfg.deploy.default_net_type}\t{cfg.auto.subnet_pool}")


def _cmd_alloc(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    if args.resource == "vlan":
        print(manager.alloc_vlan(args.tenant))
    elif args.resource == "local-vlan":
        print(manager.alloc_local_vlan(args.tenant))
    elif args.resource == "vxlan":
        vxlan, local_vlan = manager.alloc_vxlan(args.tenant)
        print(f"{vxlan} {local_vlan}")
    else:
        print(manager.alloc_subnet(args.tenant))


def _int_values(values, count: int, usage: str):
    if len(values) != count:
        raise ValueError(f"expected {usage}")
    return [int(value) for value in values]


def _cmd_free(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    if args.resource == "vlan":
        (vlan,) = _int_values(args.values, 1, "VLAN")
        manager.free_vlan(args.tenant, vlan)
    elif args.resource == "local-vlan":
        (vlan,) = _int_values(args.values, 1, "LOCAL_VLAN")
        manager.free_local_vlan(args.tenant, vlan)
    elif args.resource == "vxlan":
        vxlan, local_vlan = _int_values(args.values, 2, "VXLAN LOCAL_VLAN")
        manager.free_vxlan(args.tenant, vxlan, local_vlan)
    else:
        if len(args.values) != 1:
            raise ValueError("expected ADDRESS")
        manager.free_subnet(args.tenant, args.values[0])


def _cmd_set_vlan(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    manager.set_vlan(args.tenant, args.vlan)


def _cmd_delete(manager: TenantPoolManager, args: argparse.Namespace) -> None:
    manager.remove_tenant(args.tenant)
    print(f"tenant {args.tenant} removed")


COMMANDS: Dict[str, Callable[[TenantPoolManager, argparse.Namespace], None]] = {
    "apply": _cmd_apply,
    "show": _cmd_show,
    "list": _cmd_list,
    "alloc": _cmd_alloc,
    "free": _cmd_free,
    "set-vlan": _cmd_set_vlan,
    "delete": _cmd_delete,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config) if args.config else AgentConfig()
    if args.state_dir is not None:
        config.state.path = args.state_dir

    manager = TenantPoolManager(config.state.build_driver())

    try:
        COMMANDS[args.command](manager, args)
    except (GStateError, OSError, ValueError, yaml.YAMLError) as exc:
        LOG.error("%s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
