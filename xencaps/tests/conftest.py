from __future__ import annotations

import pytest

from xencaps.config import settings
from xencaps.errors import ToolstackError
from xencaps.schemas import (
    CPUTOPOLOGY_INVALID_ENTRY,
    NUMAINFO_INVALID_ENTRY,
    CpuTopologyEntry,
    NumaNodeInfo,
    PhysInfo,
    VersionInfo,
)
from xencaps.toolstack import Toolstack

GiB = 1 << 30


class FakeToolstack(Toolstack):
    """In-memory toolstack; set a field to an exception to make that query fail."""

    def __init__(
        self,
        hw_cap=None,
        numainfo=None,
        cpu_topology=None,
        capabilities="xen-3.0-x86_64 hvm-3.0-x86_64",
    ):
        self.hw_cap = [0x40] if hw_cap is None else hw_cap
        self.numainfo = numainfo
        self.cpu_topology = cpu_topology
        self.capabilities = capabilities
        self.calls: list[str] = []

    @staticmethod
    def _maybe_raise(value):
        if isinstance(value, Exception):
            raise value
        return value

    def get_physinfo(self) -> PhysInfo:
        self.calls.append("physinfo")
        return PhysInfo(hw_cap=self._maybe_raise(self.hw_cap))

    def get_numainfo(self):
        self.calls.append("numainfo")
        return self._maybe_raise(self.numainfo)

    def get_cpu_topology(self):
        self.calls.append("cpu_topology")
        return self._maybe_raise(self.cpu_topology)

    def get_version_info(self) -> VersionInfo:
        self.calls.append("version_info")
        return VersionInfo(xen_version="4.17", capabilities=self._maybe_raise(self.capabilities))


def node(size_bytes: int | None) -> NumaNodeInfo:
    return NumaNodeInfo(size=NUMAINFO_INVALID_ENTRY if size_bytes is None else size_bytes)


def cpu(core: int | None, socket: int, node_id: int) -> CpuTopologyEntry:
    return CpuTopologyEntry(
        core=CPUTOPOLOGY_INVALID_ENTRY if core is None else core,
        socket=socket,
        node=node_id,
    )


def two_node_topology() -> tuple[list[NumaNodeInfo], list[CpuTopologyEntry]]:
    """Two nodes, two hyperthreaded cores per node."""
    nodes = [node(4 * GiB), node(8 * GiB)]
    cpus = [
        cpu(0, 0, 0), cpu(0, 0, 0), cpu(1, 0, 0), cpu(1, 0, 0),
        cpu(0, 1, 1), cpu(0, 1, 1), cpu(1, 1, 1), cpu(1, 1, 1),
    ]
    return nodes, cpus


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch):
    """Pin settings so environment overrides don't leak into tests."""
    monkeypatch.setattr(settings, "execbin_dir", "/usr/lib/xen/bin")
    monkeypatch.setattr(settings, "firmware_dir", "/usr/lib/xen/boot")
    monkeypatch.setattr(settings, "net_prefix", "vif")
    monkeypatch.setattr(settings, "suspend_resume_supported", True)
    yield


@pytest.fixture
def toolstack() -> FakeToolstack:
    nodes, cpus = two_node_topology()
    return FakeToolstack(numainfo=nodes, cpu_topology=cpus)


@pytest.fixture
def failing_query():
    return ToolstackError("query failed")
