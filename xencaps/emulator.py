"""Device model detection for HVM guests."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from enum import IntEnum

from xencaps.capabilities import OSType
from xencaps.config import settings

logger = logging.getLogger(__name__)

# Only the traditional qemu-dm prints this in its -help output
QEMU_DM_MARKER = "Options specific to the Xen version:"

# Cap on how much -help output is kept in memory
EMULATOR_HELP_LIMIT = 1 << 20


class DeviceModelVersion(IntEnum):
    """Device model generations, numbered as the toolstack numbers them."""
    UNKNOWN = 0
    QEMU_XEN_TRADITIONAL = 1
    QEMU_XEN = 2
    NONE = 3


DEFAULT_DEVICE_MODEL = DeviceModelVersion.QEMU_XEN


@dataclass
class DomainDef:
    """The parts of a guest definition the classifier looks at."""
    os_type: OSType
    emulator: str | None = None


def _emulator_help(emulator: str) -> bytes | None:
    """Raw ``-help`` output, at most EMULATOR_HELP_LIMIT bytes of it.

    Output past the limit is not read; the process is killed and the
    captured prefix returned.
    """
    try:
        proc = subprocess.Popen(
            [emulator, "-help"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, ValueError) as e:
        logger.debug("Could not run %s -help: %s", emulator, e)
        return None

    timer = threading.Timer(settings.emulator_help_timeout, proc.kill)
    timer.start()
    try:
        output = proc.stdout.read(EMULATOR_HELP_LIMIT)
        truncated = len(output) >= EMULATOR_HELP_LIMIT
        if truncated:
            proc.kill()
        returncode = proc.wait()
    except OSError as e:
        proc.kill()
        proc.wait()
        logger.debug("Failed reading %s -help output: %s", emulator, e)
        return None
    finally:
        timer.cancel()
        proc.stdout.close()

    if truncated:
        logger.debug("%s -help output truncated at %d bytes", emulator, EMULATOR_HELP_LIMIT)
        return output
    if returncode != 0:
        logger.debug("%s -help exited with %d", emulator, returncode)
        return None
    return output


def get_emulator_type(domain: DomainDef) -> DeviceModelVersion:
    """Work out which device model an HVM guest's emulator is.

    Anything that prevents confirming the traditional qemu-dm falls back
    to the default (upstream qemu) device model.
    """
    if domain.os_type != OSType.HVM:
        return DEFAULT_DEVICE_MODEL

    if not domain.emulator or not os.path.isfile(domain.emulator):
        return DEFAULT_DEVICE_MODEL

    output = _emulator_help(domain.emulator)
    if output and QEMU_DM_MARKER.encode() in output:
        return DeviceModelVersion.QEMU_XEN_TRADITIONAL
    return DEFAULT_DEVICE_MODEL
