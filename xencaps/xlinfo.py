"""Parser for ``xl info -n`` output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from xencaps.schemas import (
    CPUTOPOLOGY_INVALID_ENTRY,
    NUMAINFO_INVALID_ENTRY,
    CpuTopologyEntry,
    NumaNodeInfo,
    PhysInfo,
    VersionInfo,
)

# "xen_caps               : xen-3.0-x86_64 ..." (xl pads keys, so there is
# always whitespace before the colon)
_KV_RE = re.compile(r"^([A-Za-z_][\w ]*?)\s+:\s?(.*)$")
_CPU_ROW_RE = re.compile(r"^\s*(\d+):\s+(\d+)\s+(\d+)\s+(\d+)\s*$")
_NUMA_ROW_RE = re.compile(r"^\s*(\d+):\s+(\d+)\s+(\d+)(?:\s+([\d,]+))?\s*$")
_SECTION_HEADER_RE = re.compile(r"^(cpu|node|device):\s+[a-z]")

_SECTIONS = ("cpu_topology", "numa_info")


@dataclass
class XlInfo:
    """Raw fields and tables from one ``xl info -n`` run."""
    fields: dict[str, str] = field(default_factory=dict)
    cpu_rows: dict[int, tuple[int, int, int]] = field(default_factory=dict)  # idx -> (core, socket, node)
    numa_rows: dict[int, tuple[int, int, list[int]]] = field(default_factory=dict)  # idx -> (size MiB, free MiB, dists)

    def _int_field(self, key: str) -> int:
        try:
            return int(self.fields.get(key, "0"))
        except ValueError:
            return 0

    def physinfo(self) -> PhysInfo:
        return PhysInfo(
            hw_cap=parse_hw_caps(self.fields.get("hw_caps", "")),
            nr_cpus=self._int_field("nr_cpus"),
            nr_nodes=self._int_field("nr_nodes"),
            machine=self.fields.get("machine"),
        )

    def numainfo(self) -> list[NumaNodeInfo]:
        count = max(self._int_field("nr_nodes"), max(self.numa_rows, default=-1) + 1)
        nodes = []
        for idx in range(count):
            row = self.numa_rows.get(idx)
            if row is None:
                nodes.append(NumaNodeInfo(size=NUMAINFO_INVALID_ENTRY))
                continue
            size_mib, free_mib, dists = row
            nodes.append(NumaNodeInfo(size=size_mib << 20, free=free_mib << 20, dists=dists))
        return nodes

    def cpu_topology(self) -> list[CpuTopologyEntry]:
        count = max(self._int_field("nr_cpus"), max(self.cpu_rows, default=-1) + 1)
        entries = []
        for idx in range(count):
            row = self.cpu_rows.get(idx)
            if row is None:
                entries.append(CpuTopologyEntry(core=CPUTOPOLOGY_INVALID_ENTRY, socket=0, node=0))
                continue
            core, socket, node = row
            entries.append(CpuTopologyEntry(core=core, socket=socket, node=node))
        return entries

    def version_info(self) -> VersionInfo:
        major = self.fields.get("xen_major")
        minor = self.fields.get("xen_minor")
        extra = self.fields.get("xen_extra", "")
        xen_version = self.fields.get("xen_version")
        if xen_version is None and major is not None and minor is not None:
            xen_version = f"{major}.{minor}{extra}"
        return VersionInfo(xen_version=xen_version, capabilities=self.fields.get("xen_caps"))


def parse_hw_caps(value: str) -> list[int]:
    """Parse ``bfebfbff:77fafbff:...`` into a list of 32-bit words."""
    words = []
    for part in value.strip().split(":"):
        part = part.strip()
        if not part:
            continue
        try:
            words.append(int(part, 16))
        except ValueError:
            break
    return words


def parse_xl_info(text: str) -> XlInfo:
    """Parse the output of ``xl info -n``.

    xl prints only valid topology entries, so absent CPU and node indexes
    are turned into the toolstack's invalid-entry sentinels by the
    ``cpu_topology()`` and ``numainfo()`` accessors.
    """
    info = XlInfo()
    section: str | None = None

    for line in text.splitlines():
        if not line.strip():
            continue

        if section == "cpu_topology":
            m = _CPU_ROW_RE.match(line)
            if m:
                idx, core, socket, node = (int(g) for g in m.groups())
                info.cpu_rows[idx] = (core, socket, node)
                continue
        elif section == "numa_info":
            m = _NUMA_ROW_RE.match(line)
            if m:
                dists = [int(d) for d in m.group(4).split(",")] if m.group(4) else []
                info.numa_rows[int(m.group(1))] = (int(m.group(2)), int(m.group(3)), dists)
                continue

        if _SECTION_HEADER_RE.match(line):
            continue

        m = _KV_RE.match(line)
        if not m:
            continue
        key, value = m.group(1).strip(), m.group(2).strip()
        if key in _SECTIONS:
            section = key
        else:
            section = None
            info.fields[key] = value

    return info
