"""Host NUMA topology builder.

Rebuilds, for every node the toolstack reports, the list of CPUs that
belong to it and the sibling set of each CPU (CPUs sharing the same
socket and core within the node).
"""

from __future__ import annotations

import logging

from xencaps.capabilities import Capabilities, CpuInfo
from xencaps.errors import AllocationError, CapabilityError, ToolstackError, TopologyQueryError
from xencaps.schemas import CpuTopologyEntry, NumaNodeInfo
from xencaps.toolstack import Toolstack

logger = logging.getLogger(__name__)


def _query_topology(toolstack: Toolstack) -> tuple[list[NumaNodeInfo], list[CpuTopologyEntry]]:
    try:
        numa_info = toolstack.get_numainfo()
    except ToolstackError as e:
        raise TopologyQueryError(f"Failed to get NUMA info: {e}") from e
    if not numa_info:
        raise TopologyQueryError("Toolstack reported no NUMA nodes")

    try:
        cpu_topo = toolstack.get_cpu_topology()
    except ToolstackError as e:
        raise TopologyQueryError(f"Failed to get CPU topology: {e}") from e
    if not cpu_topo:
        raise TopologyQueryError("Toolstack reported no CPU topology")

    return numa_info, cpu_topo


def collect_node_cpus(cpu_topo: list[CpuTopologyEntry]) -> dict[int, list[CpuInfo]]:
    """Group valid CPUs by node and fill in their sibling sets."""
    cpus_by_node: dict[int, list[CpuInfo]] = {}

    for cpu_id, entry in enumerate(cpu_topo):
        if not entry.valid:
            continue
        cpus_by_node.setdefault(entry.node, []).append(
            CpuInfo(id=cpu_id, socket_id=entry.socket, core_id=entry.core, siblings={cpu_id})
        )

    for cpu_id, entry in enumerate(cpu_topo):
        if not entry.valid:
            continue
        for cpu in cpus_by_node[entry.node]:
            if cpu.socket_id == entry.socket and cpu.core_id == entry.core:
                cpu.siblings.add(cpu_id)

    return cpus_by_node


def init_numa(toolstack: Toolstack, caps: Capabilities) -> None:
    """Attach one NUMA cell per node with a valid memory size.

    On failure every cell is removed from ``caps`` before the error
    propagates.
    """
    numa_info, cpu_topo = _query_topology(toolstack)

    try:
        cpus_by_node = collect_node_cpus(cpu_topo)
    except MemoryError as e:
        raise AllocationError("Out of memory building CPU topology") from e

    try:
        for node_id, node in enumerate(numa_info):
            if not node.valid:
                dropped = cpus_by_node.pop(node_id, [])
                if dropped:
                    logger.warning(
                        "Skipping NUMA node %d with invalid size, dropping %d cpus",
                        node_id, len(dropped),
                    )
                continue

            # The cell owns the list from here on
            cpus = cpus_by_node.pop(node_id, [])
            caps.add_host_numa_cell(node_id, node.size // 1024, cpus)
            logger.debug("Added NUMA cell %d with %d cpus", node_id, len(cpus))
    except (CapabilityError, MemoryError) as e:
        cpus_by_node.clear()
        caps.clear_numa_info()
        if isinstance(e, MemoryError):
            raise AllocationError("Out of memory adding NUMA cells") from e
        raise

    if cpus_by_node:
        logger.warning(
            "CPUs reference unknown NUMA nodes %s, not reported", sorted(cpus_by_node)
        )
