"""Command line front end for xencaps."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from xencaps.arch import arch_from_host
from xencaps.builder import build_capabilities
from xencaps.capabilities import Capabilities, OSType
from xencaps.config import settings
from xencaps.emulator import DomainDef, get_emulator_type
from xencaps.errors import CapabilityError
from xencaps.nodeinfo import SYSFS_SYSTEM_PATH, init_os_numa, populate_node_info
from xencaps.schemas import CapabilitiesReport
from xencaps.toolstack import XlToolstack
from xencaps.version import __version__

logger = logging.getLogger(__name__)


def _cmd_capabilities(args: argparse.Namespace) -> int:
    toolstack = XlToolstack(command=args.xl)
    try:
        caps = build_capabilities(toolstack)
    except CapabilityError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(CapabilitiesReport.from_capabilities(caps).model_dump_json(indent=2))
    return 0


def _cmd_nodeinfo(args: argparse.Namespace) -> int:
    try:
        info = populate_node_info()
    except CapabilityError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(json.dumps(info.to_dict(), indent=2))
    return 0


def _cmd_numa(args: argparse.Namespace) -> int:
    supported = settings.suspend_resume_supported
    caps = Capabilities(arch_from_host(), suspend_supported=supported, resume_supported=supported)
    try:
        init_os_numa(caps, sysfs_root=Path(args.sysfs_root))
    except CapabilityError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    report = CapabilitiesReport.from_capabilities(caps)
    print(json.dumps([cell.model_dump() for cell in report.host.numa_cells], indent=2))
    return 0


def _cmd_emulator_type(args: argparse.Namespace) -> int:
    domain = DomainDef(os_type=OSType(args.os_type), emulator=args.emulator)
    print(get_emulator_type(domain).name)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="xencaps", description="Discover Xen host capabilities")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override XENCAPS_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    caps = sub.add_parser("capabilities", help="Print host capabilities as JSON")
    caps.add_argument("--xl", default=None, help="xl binary to query (default: XENCAPS_XL_COMMAND)")
    caps.set_defaults(func=_cmd_capabilities)

    node = sub.add_parser("nodeinfo", help="Print OS node information as JSON")
    node.set_defaults(func=_cmd_nodeinfo)

    numa = sub.add_parser("numa", help="Print NUMA cells read from sysfs as JSON")
    numa.add_argument("--sysfs-root", default=str(SYSFS_SYSTEM_PATH), help="sysfs system directory")
    numa.set_defaults(func=_cmd_numa)

    emu = sub.add_parser("emulator-type", help="Print the device model an emulator provides")
    emu.add_argument("--os-type", choices=[t.value for t in OSType], default=OSType.HVM.value)
    emu.add_argument("--emulator", default=None, help="Path to the emulator binary")
    emu.set_defaults(func=_cmd_emulator_type)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
