"""In-memory host capability model.

A ``Capabilities`` object is created empty, filled in by the host, NUMA
and guest builders, then sealed and handed to the caller as a read-only
snapshot. The builder methods mirror the operations those steps need;
each raises ``AllocationError`` when it rejects an entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from xencaps.arch import Arch
from xencaps.errors import AllocationError


class OSType(str, Enum):
    """Guest OS type."""
    HVM = "hvm"
    XEN = "xen"  # paravirtualized


@dataclass
class CpuInfo:
    """A host CPU inside a NUMA cell."""
    id: int
    socket_id: int
    core_id: int
    siblings: set[int] = field(default_factory=set)


@dataclass
class NumaCell:
    """A host NUMA node with its memory and CPUs."""
    id: int
    memory_kb: int
    cpus: list[CpuInfo] = field(default_factory=list)


@dataclass
class HostInfo:
    arch: Arch
    features: list[str] = field(default_factory=list)
    net_prefix: str | None = None
    numa_cells: list[NumaCell] = field(default_factory=list)


@dataclass
class GuestFeature:
    name: str
    default_on: bool
    toggle: bool


@dataclass
class GuestDomain:
    virt_type: str
    emulator: str | None = None
    loader: str | None = None
    machines: list[str] = field(default_factory=list)


@dataclass
class Guest:
    """What the host offers for one (os type, arch) combination."""
    os_type: OSType
    arch: Arch
    emulator: str | None = None
    loader: str | None = None
    machines: list[str] = field(default_factory=list)
    domains: list[GuestDomain] = field(default_factory=list)
    features: list[GuestFeature] = field(default_factory=list)

    @property
    def wordsize(self) -> int:
        return self.arch.wordsize

    def add_domain(
        self,
        virt_type: str,
        emulator: str | None = None,
        loader: str | None = None,
        machines: list[str] | None = None,
    ) -> GuestDomain:
        if any(d.virt_type == virt_type for d in self.domains):
            raise AllocationError(
                f"domain type {virt_type} already present for {self.os_type.value}/{self.arch.value}"
            )
        domain = GuestDomain(
            virt_type=virt_type,
            emulator=emulator,
            loader=loader,
            machines=list(machines or []),
        )
        self.domains.append(domain)
        return domain

    def add_feature(self, name: str, default_on: bool, toggle: bool) -> GuestFeature:
        if self.has_feature(name):
            raise AllocationError(
                f"guest feature {name} already present for {self.os_type.value}/{self.arch.value}"
            )
        feature = GuestFeature(name=name, default_on=default_on, toggle=toggle)
        self.features.append(feature)
        return feature

    def has_feature(self, name: str) -> bool:
        return any(f.name == name for f in self.features)


class Capabilities:
    """Root of the capability model for one host."""

    def __init__(self, host_arch: Arch, suspend_supported: bool, resume_supported: bool):
        self.host = HostInfo(arch=host_arch)
        self.guests: list[Guest] = []
        self._suspend_supported = suspend_supported
        self._resume_supported = resume_supported
        self._sealed = False

    @property
    def suspend_supported(self) -> bool:
        return self._suspend_supported

    @property
    def resume_supported(self) -> bool:
        return self._resume_supported

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _check_mutable(self) -> None:
        if self._sealed:
            raise RuntimeError("capabilities are sealed and can no longer be modified")

    def seal(self) -> None:
        """Freeze the object; further builder calls raise RuntimeError."""
        self._sealed = True

    def add_host_feature(self, name: str) -> None:
        self._check_mutable()
        if name not in self.host.features:
            self.host.features.append(name)

    def set_net_prefix(self, prefix: str) -> None:
        self._check_mutable()
        self.host.net_prefix = prefix

    def add_host_numa_cell(self, cell_id: int, memory_kb: int, cpus: list[CpuInfo]) -> NumaCell:
        self._check_mutable()
        if memory_kb < 0:
            raise AllocationError(f"NUMA cell {cell_id} has negative memory size")
        if any(c.id == cell_id for c in self.host.numa_cells):
            raise AllocationError(f"NUMA cell {cell_id} already present")
        cell = NumaCell(id=cell_id, memory_kb=memory_kb, cpus=cpus)
        self.host.numa_cells.append(cell)
        return cell

    def clear_numa_info(self) -> None:
        self._check_mutable()
        self.host.numa_cells.clear()

    def add_guest(
        self,
        os_type: OSType,
        arch: Arch,
        emulator: str | None,
        loader: str | None,
        machines: list[str],
    ) -> Guest:
        self._check_mutable()
        if not machines:
            raise AllocationError(f"guest {os_type.value}/{arch.value} needs at least one machine type")
        guest = Guest(
            os_type=os_type,
            arch=arch,
            emulator=emulator,
            loader=loader,
            machines=list(machines),
        )
        self.guests.append(guest)
        return guest

    def remove_guests_from(self, index: int) -> None:
        """Drop guests added at or after ``index``."""
        self._check_mutable()
        del self.guests[index:]

    def release(self) -> None:
        """Drop everything the builders attached."""
        self._check_mutable()
        self.host.features.clear()
        self.host.net_prefix = None
        self.host.numa_cells.clear()
        self.guests.clear()

    def find_guest(self, os_type: OSType, arch: Arch) -> Guest | None:
        for guest in self.guests:
            if guest.os_type == os_type and guest.arch == arch:
                return guest
        return None
