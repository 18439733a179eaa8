"""Assemble host capabilities from the toolstack."""

from __future__ import annotations

import logging

from xencaps.arch import Arch, arch_from_host
from xencaps.capabilities import Capabilities
from xencaps.config import settings
from xencaps.errors import CapabilityError
from xencaps.guests import init_guests
from xencaps.host import init_host
from xencaps.numa import init_numa
from xencaps.toolstack import Toolstack

logger = logging.getLogger(__name__)


def build_capabilities(toolstack: Toolstack, host_arch: Arch | None = None) -> Capabilities:
    """Build a sealed Capabilities object for this host.

    Runs the host, NUMA and guest steps in order. The first failing step
    aborts the build; everything attached so far is released and the
    error re-raised.

    Args:
        toolstack: Source of host, topology and guest information
        host_arch: Host architecture, detected from uname if not given

    Returns:
        The populated, sealed Capabilities
    """
    supported = settings.suspend_resume_supported
    caps = Capabilities(
        host_arch if host_arch is not None else arch_from_host(),
        suspend_supported=supported,
        resume_supported=supported,
    )

    try:
        init_host(toolstack, caps)
        init_numa(toolstack, caps)
        init_guests(toolstack, caps)
    except CapabilityError:
        caps.release()
        raise

    caps.seal()
    logger.info(
        "Built capabilities: arch=%s features=%s cells=%d guests=%d",
        caps.host.arch.value, caps.host.features, len(caps.host.numa_cells), len(caps.guests),
    )
    return caps


def make_capabilities(toolstack: Toolstack, host_arch: Arch | None = None) -> Capabilities | None:
    """Like build_capabilities, but returns None on failure."""
    try:
        return build_capabilities(toolstack, host_arch=host_arch)
    except CapabilityError as e:
        logger.error(f"Failed to build capabilities: {type(e).__name__}: {e}")
        return None
