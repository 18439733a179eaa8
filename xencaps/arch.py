"""CPU architecture tags used in host and guest capabilities."""

from __future__ import annotations

import os
import re
from enum import Enum


class Arch(str, Enum):
    """Guest/host architecture names as reported in capabilities."""
    NONE = "none"
    I686 = "i686"
    X86_64 = "x86_64"
    ITANIUM = "ia64"
    PPC64 = "ppc64"
    ARMV7L = "armv7l"
    AARCH64 = "aarch64"

    @property
    def wordsize(self) -> int:
        return _WORDSIZE.get(self, 0)


_WORDSIZE = {
    Arch.I686: 32,
    Arch.X86_64: 64,
    Arch.ITANIUM: 64,
    Arch.PPC64: 64,
    Arch.ARMV7L: 32,
    Arch.AARCH64: 64,
}

# uname machine aliases that differ from the canonical name
_MACHINE_ALIASES = {
    "amd64": Arch.X86_64,
    "arm64": Arch.AARCH64,
    "ppc64le": Arch.PPC64,
}


def arch_from_machine(machine: str) -> Arch:
    """Map a uname machine string (e.g. ``i586``, ``amd64``) to an Arch."""
    machine = machine.strip().lower()
    if re.fullmatch(r"i[3-6]86", machine):
        return Arch.I686
    if machine.startswith("armv7"):
        return Arch.ARMV7L
    if machine in _MACHINE_ALIASES:
        return _MACHINE_ALIASES[machine]
    try:
        return Arch(machine)
    except ValueError:
        return Arch.NONE


def arch_from_host() -> Arch:
    """Architecture of the machine we are running on."""
    return arch_from_machine(os.uname().machine)
