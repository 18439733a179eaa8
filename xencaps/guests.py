"""Guest architecture parsing.

The toolstack reports supported guests as a space-separated list of
tokens. On x86::

    TYP-VER-ARCH[p]
    ^   ^   ^    ^
    |   |   |    +-- PAE supported
    |   |   +------- x86_32 or x86_64
    |   +----------- the version of Xen, eg. "3.0"
    +--------------- "xen" or "hvm" for para or full virt respectively

On IA64 the optional suffix is ``be`` (big-endian supported). Other
architectures (powerpc64, armv7l, aarch64) carry no suffix.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache

from xencaps.arch import Arch
from xencaps.capabilities import Capabilities, OSType
from xencaps.config import settings
from xencaps.errors import CapabilitiesMissingError, HostQueryError, RegexCompileError, ToolstackError
from xencaps.toolstack import Toolstack

logger = logging.getLogger(__name__)

XEN_CAP_REGEX = r"(xen|hvm)-[0-9]+\.[0-9]+-(aarch64|armv7l|x86_32|x86_64|ia64|powerpc64)(p|be)?"

# Upper bound on distinct (arch, hvm) combinations kept from one string
MAX_GUEST_ARCHS = 32

_TOKEN_ARCHS = {
    "x86_32": Arch.I686,
    "x86_64": Arch.X86_64,
    "ia64": Arch.ITANIUM,
    "powerpc64": Arch.PPC64,
    "armv7l": Arch.ARMV7L,
    "aarch64": Arch.AARCH64,
}


@dataclass
class GuestArchProfile:
    arch: Arch
    hvm: bool
    pae: bool = False
    nonpae: bool = False
    ia64_be: bool = False

    @property
    def key(self) -> tuple[Arch, bool]:
        return (self.arch, self.hvm)


@lru_cache(maxsize=1)
def _cap_pattern(pattern: str = XEN_CAP_REGEX) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise RegexCompileError(f"Failed to compile regex {pattern}: {e}") from e


def _decode_token(token: str) -> GuestArchProfile | None:
    m = _cap_pattern().search(token)
    if m is None:
        return None

    mode, arch_name, suffix = m.group(1), m.group(2), m.group(3)
    arch = _TOKEN_ARCHS.get(arch_name)
    if arch is None:
        return None

    profile = GuestArchProfile(arch=arch, hvm=(mode == "hvm"))
    if arch == Arch.I686:
        if suffix == "p":
            profile.pae = True
        else:
            profile.nonpae = True
    elif arch == Arch.ITANIUM and suffix == "be":
        profile.ia64_be = True
    return profile


def parse_guest_archs(capabilities: str) -> list[GuestArchProfile]:
    """Parse a capability string into merged guest profiles.

    Tokens sharing an (arch, hvm) key are merged; a flag set by any token
    stays set. Profiles are returned in order of first appearance, at most
    MAX_GUEST_ARCHS of them.
    """
    profiles: dict[tuple[Arch, bool], GuestArchProfile] = {}

    for token in capabilities.split(" "):
        if not token:
            continue
        decoded = _decode_token(token)
        if decoded is None:
            logger.debug("Ignoring capability token %r", token)
            continue

        profile = profiles.get(decoded.key)
        if profile is None:
            if len(profiles) >= MAX_GUEST_ARCHS:
                logger.debug("Too many guest architectures, dropping %r", token)
                continue
            profiles[decoded.key] = decoded
            continue

        # some archs can do both pae and non-pae but xen reports them as
        # separate tokens
        profile.pae = profile.pae or decoded.pae
        profile.nonpae = profile.nonpae or decoded.nonpae
        profile.ia64_be = profile.ia64_be or decoded.ia64_be

    return list(profiles.values())


def _add_guest(caps: Capabilities, profile: GuestArchProfile) -> None:
    if profile.hvm:
        os_type, machine = OSType.HVM, "xenfv"
        loader = f"{settings.firmware_dir}/hvmloader"
    else:
        os_type, machine = OSType.XEN, "xenpv"
        loader = None

    guest = caps.add_guest(
        os_type,
        profile.arch,
        emulator=f"{settings.execbin_dir}/qemu-system-i386",
        loader=loader,
        machines=[machine],
    )
    guest.add_domain("xen")

    if profile.pae:
        guest.add_feature("pae", default_on=True, toggle=False)
    if profile.nonpae:
        guest.add_feature("nonpae", default_on=True, toggle=False)
    if profile.ia64_be:
        guest.add_feature("ia64_be", default_on=True, toggle=False)

    if profile.hvm:
        guest.add_feature("acpi", default_on=True, toggle=True)
        guest.add_feature("apic", default_on=True, toggle=False)
        guest.add_feature("hap", default_on=True, toggle=True)


def init_guests(toolstack: Toolstack, caps: Capabilities) -> None:
    """Add one guest entry per architecture the toolstack supports.

    If adding any entry fails, the guests added by this call are removed
    again before the error propagates.
    """
    try:
        version_info = toolstack.get_version_info()
    except ToolstackError as e:
        raise HostQueryError(f"Failed to get version info from toolstack: {e}") from e

    if version_info.capabilities is None:
        raise CapabilitiesMissingError("Failed to get capabilities from toolstack")

    profiles = parse_guest_archs(version_info.capabilities)

    start = len(caps.guests)
    try:
        for profile in profiles:
            _add_guest(caps, profile)
    except Exception:
        caps.remove_guests_from(start)
        raise

    logger.debug("Added %d guest architectures", len(profiles))
