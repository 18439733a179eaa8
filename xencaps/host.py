"""Host-level feature detection."""

from __future__ import annotations

import logging

from xencaps.capabilities import Capabilities
from xencaps.config import settings
from xencaps.errors import HostQueryError, ToolstackError
from xencaps.toolstack import Toolstack

logger = logging.getLogger(__name__)

# Bit 6 of the first hw_cap word, see xen/include/asm-x86/cpufeature.h
X86_FEATURE_PAE_MASK = 0x40


def host_has_pae(hw_cap: list[int]) -> bool:
    """Check the PAE bit in the host's hardware capability words.

    hw_cap is an array of 32-bit words; feature X*32+Y is the Y'th bit of
    the X'th word.
    """
    return bool(hw_cap) and bool(hw_cap[0] & X86_FEATURE_PAE_MASK)


def init_host(toolstack: Toolstack, caps: Capabilities) -> None:
    """Add host CPU features and the network interface prefix."""
    try:
        phys_info = toolstack.get_physinfo()
    except ToolstackError as e:
        raise HostQueryError(f"Failed to get node physical info from toolstack: {e}") from e

    if host_has_pae(phys_info.hw_cap):
        caps.add_host_feature("pae")
        logger.debug("Host supports PAE")

    caps.set_net_prefix(settings.net_prefix)
