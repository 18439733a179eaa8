"""Toolstack record and report schemas.

These Pydantic models describe the data read from the toolstack and the
JSON report produced from a finished ``Capabilities`` object.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from xencaps.capabilities import Capabilities

# Sentinels the toolstack uses for entries it could not fill in
CPUTOPOLOGY_INVALID_ENTRY = 2**32 - 1
NUMAINFO_INVALID_ENTRY = 2**64 - 1


# --- Toolstack records ---

class PhysInfo(BaseModel):
    """Host physical info."""
    hw_cap: list[int] = Field(default_factory=list)  # 32-bit feature words
    nr_cpus: int = 0
    nr_nodes: int = 0
    machine: str | None = None


class NumaNodeInfo(BaseModel):
    """Per-node memory, size in bytes or NUMAINFO_INVALID_ENTRY."""
    size: int
    free: int = 0
    dists: list[int] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.size != NUMAINFO_INVALID_ENTRY


class CpuTopologyEntry(BaseModel):
    """Per-CPU placement, core is CPUTOPOLOGY_INVALID_ENTRY for absent CPUs."""
    core: int
    socket: int
    node: int

    @property
    def valid(self) -> bool:
        return self.core != CPUTOPOLOGY_INVALID_ENTRY


class VersionInfo(BaseModel):
    """Hypervisor version info; capabilities is the raw guest caps string."""
    xen_version: str | None = None
    capabilities: str | None = None


# --- Reports ---

class CpuReport(BaseModel):
    id: int
    socket_id: int
    core_id: int
    siblings: list[int]


class NumaCellReport(BaseModel):
    id: int
    memory_kb: int
    cpus: list[CpuReport] = Field(default_factory=list)


class HostReport(BaseModel):
    arch: str
    features: list[str] = Field(default_factory=list)
    net_prefix: str | None = None
    suspend_supported: bool
    resume_supported: bool
    numa_cells: list[NumaCellReport] = Field(default_factory=list)


class GuestFeatureReport(BaseModel):
    name: str
    default_on: bool
    toggle: bool


class GuestReport(BaseModel):
    os_type: str
    arch: str
    wordsize: int
    emulator: str | None = None
    loader: str | None = None
    machines: list[str] = Field(default_factory=list)
    domain_types: list[str] = Field(default_factory=list)
    features: list[GuestFeatureReport] = Field(default_factory=list)


class CapabilitiesReport(BaseModel):
    """Serializable snapshot of a Capabilities object."""
    host: HostReport
    guests: list[GuestReport] = Field(default_factory=list)

    @classmethod
    def from_capabilities(cls, caps: Capabilities) -> "CapabilitiesReport":
        host = HostReport(
            arch=caps.host.arch.value,
            features=list(caps.host.features),
            net_prefix=caps.host.net_prefix,
            suspend_supported=caps.suspend_supported,
            resume_supported=caps.resume_supported,
            numa_cells=[
                NumaCellReport(
                    id=cell.id,
                    memory_kb=cell.memory_kb,
                    cpus=[
                        CpuReport(
                            id=cpu.id,
                            socket_id=cpu.socket_id,
                            core_id=cpu.core_id,
                            siblings=sorted(cpu.siblings),
                        )
                        for cpu in cell.cpus
                    ],
                )
                for cell in caps.host.numa_cells
            ],
        )
        guests = [
            GuestReport(
                os_type=guest.os_type.value,
                arch=guest.arch.value,
                wordsize=guest.wordsize,
                emulator=guest.emulator,
                loader=guest.loader,
                machines=list(guest.machines),
                domain_types=[d.virt_type for d in guest.domains],
                features=[
                    GuestFeatureReport(name=f.name, default_on=f.default_on, toggle=f.toggle)
                    for f in guest.features
                ],
            )
            for guest in caps.guests
        ]
        return cls(host=host, guests=guests)
