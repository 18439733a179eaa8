"""Host node information from the operating system.

Machine model comes from uname, CPU counts from /proc/cpuinfo and total
memory from psutil. /proc/cpuinfo has no knowledge of NUMA nodes, so the
node count is always 1 in NodeInfo; init_os_numa reads per-node CPUs and
memory from sysfs instead.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from pathlib import Path

import psutil

from xencaps.capabilities import Capabilities
from xencaps.errors import CapabilityError, NodeInfoError
from xencaps.numa import collect_node_cpus
from xencaps.schemas import CPUTOPOLOGY_INVALID_ENTRY, CpuTopologyEntry

logger = logging.getLogger(__name__)

CPUINFO_PATH = Path("/proc/cpuinfo")
SYSFS_SYSTEM_PATH = Path("/sys/devices/system")

_NUMBER_RE = re.compile(r"\s*(\d+)(.*)$", re.DOTALL)
_NODE_DIR_RE = re.compile(r"node(\d+)")
_MEMTOTAL_RE = re.compile(r"MemTotal:\s+(\d+)\s*kB")


@dataclass
class NodeInfo:
    model: str = ""
    memory_kb: int = 0
    cpus: int = 0
    mhz: int = 0
    nodes: int = 1
    sockets: int = 1
    cores: int = 1
    threads: int = 1

    def to_dict(self) -> dict:
        return asdict(self)


def _field_value(line: str, prefix: str) -> str:
    """Return the text after ``prefix<spaces>:``, or raise if malformed."""
    rest = line[len(prefix):].lstrip()
    if not rest.startswith(":"):
        raise NodeInfoError(f"parsing cpuinfo {prefix}")
    return rest[1:]


def _leading_uint(value: str, allow_fraction: bool) -> int | None:
    m = _NUMBER_RE.match(value)
    if not m:
        return None
    tail = m.group(2)
    if tail and not tail[0].isspace() and not (allow_fraction and tail[0] == "."):
        return None
    return int(m.group(1))


def parse_cpuinfo(lines: Iterable[str]) -> NodeInfo:
    """Count CPUs, clock speed and cores from /proc/cpuinfo lines."""
    info = NodeInfo()

    for line in lines:
        if line.startswith("processor"):
            _field_value(line, "processor")
            info.cpus += 1
        elif line.startswith("cpu MHz"):
            value = _field_value(line, "cpu MHz")
            if not value:
                raise NodeInfoError("parsing cpuinfo cpu MHz")
            mhz = _leading_uint(value, allow_fraction=True)
            if mhz is not None:
                info.mhz = mhz
        elif line.startswith("cpu cores"):
            value = _field_value(line, "cpu cores")
            if not value:
                raise NodeInfoError("parsing cpuinfo cpu cores")
            cores = _leading_uint(value, allow_fraction=False)
            if cores is not None and cores > info.cores:
                info.cores = cores

    if not info.cpus:
        raise NodeInfoError("no cpus found")

    # Sockets can't be read reliably from cpuinfo, infer from cpus vs cores.
    # A "cpu cores" larger than the visible processor count (CPU-restricted
    # containers) still counts as one socket rather than zero.
    info.sockets = max(info.cpus // info.cores, 1)
    return info


def physical_memory_kb() -> int:
    return psutil.virtual_memory().total // 1024


def populate_node_info(cpuinfo_path: Path = CPUINFO_PATH) -> NodeInfo:
    """Collect node info for the running host."""
    try:
        with open(cpuinfo_path) as f:
            info = parse_cpuinfo(f)
    except OSError as e:
        raise NodeInfoError(f"cannot open {cpuinfo_path}: {e}") from e

    info.model = os.uname().machine
    try:
        info.memory_kb = physical_memory_kb()
    except (OSError, psutil.Error) as e:
        raise NodeInfoError(f"cannot read physical memory size: {e}") from e
    return info


# --- NUMA cells from sysfs ---

def parse_cpulist(text: str) -> list[int]:
    """Parse a kernel cpulist such as ``0-3,8-11`` into CPU ids."""
    cpus: list[int] = []
    for part in text.strip().split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                lo, hi = part.split("-")
                cpus.extend(range(int(lo), int(hi) + 1))
            else:
                cpus.append(int(part))
        except ValueError as e:
            raise NodeInfoError(f"malformed cpulist {text.strip()!r}") from e
    return cpus


def _read_int(path: Path, default: int = 0) -> int:
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return default


def _node_memory_kb(node_dir: Path) -> int:
    """MemTotal of one node, 0 when the kernel does not report it."""
    try:
        m = _MEMTOTAL_RE.search((node_dir / "meminfo").read_text())
    except OSError:
        return 0
    return int(m.group(1)) if m else 0


def _sysfs_node_ids(node_root: Path) -> list[int]:
    ids = []
    for entry in node_root.iterdir():
        m = _NODE_DIR_RE.fullmatch(entry.name)
        if m and entry.is_dir():
            ids.append(int(m.group(1)))
    return sorted(ids)


def init_os_numa(caps: Capabilities, sysfs_root: Path = SYSFS_SYSTEM_PATH) -> None:
    """Attach one NUMA cell per node the kernel exposes.

    Reads ``node/nodeN/cpulist`` and ``node/nodeN/meminfo`` under
    ``sysfs_root``, and per-CPU socket/core ids from ``cpu/cpuN/topology``.
    A host without NUMA support gets no cells and no error. On failure
    every cell is removed from ``caps`` before the error propagates.
    """
    node_root = sysfs_root / "node"
    if not node_root.is_dir():
        logger.debug("No NUMA information at %s", node_root)
        return

    node_ids = _sysfs_node_ids(node_root)
    if not node_ids:
        return

    entries: dict[int, CpuTopologyEntry] = {}
    memory_kb: dict[int, int] = {}
    for node_id in node_ids:
        node_dir = node_root / f"node{node_id}"
        try:
            cpulist = (node_dir / "cpulist").read_text()
        except OSError as e:
            raise NodeInfoError(f"cannot read cpus of NUMA node {node_id}: {e}") from e

        memory_kb[node_id] = _node_memory_kb(node_dir)
        for cpu_id in parse_cpulist(cpulist):
            topology = sysfs_root / "cpu" / f"cpu{cpu_id}" / "topology"
            entries[cpu_id] = CpuTopologyEntry(
                core=_read_int(topology / "core_id"),
                socket=_read_int(topology / "physical_package_id"),
                node=node_id,
            )

    invalid = CpuTopologyEntry(core=CPUTOPOLOGY_INVALID_ENTRY, socket=0, node=0)
    cpu_topo = [entries.get(i, invalid) for i in range(max(entries, default=-1) + 1)]
    cpus_by_node = collect_node_cpus(cpu_topo)

    try:
        for node_id in node_ids:
            cpus = cpus_by_node.pop(node_id, [])
            caps.add_host_numa_cell(node_id, memory_kb[node_id], cpus)
            logger.debug("Added NUMA cell %d with %d cpus from sysfs", node_id, len(cpus))
    except CapabilityError:
        caps.clear_numa_info()
        raise
