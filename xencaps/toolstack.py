"""Hypervisor toolstack query interface."""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod

from xencaps.config import settings
from xencaps.errors import ToolstackError
from xencaps.schemas import CpuTopologyEntry, NumaNodeInfo, PhysInfo, VersionInfo
from xencaps.xlinfo import XlInfo, parse_xl_info

logger = logging.getLogger(__name__)


class Toolstack(ABC):
    """Queries the capability builders need from the hypervisor.

    Implementations raise ToolstackError when a query cannot be answered.
    """

    @abstractmethod
    def get_physinfo(self) -> PhysInfo:
        ...

    @abstractmethod
    def get_numainfo(self) -> list[NumaNodeInfo] | None:
        """Per-node memory info, indexed by node id."""
        ...

    @abstractmethod
    def get_cpu_topology(self) -> list[CpuTopologyEntry] | None:
        """Per-CPU placement, indexed by CPU id."""
        ...

    @abstractmethod
    def get_version_info(self) -> VersionInfo:
        ...


class XlToolstack(Toolstack):
    """Toolstack backed by the ``xl info -n`` command.

    The command is run once, on first use, and its parsed output answers
    every query.
    """

    def __init__(self, command: str | None = None, timeout: float | None = None):
        self._command = command or settings.xl_command
        self._timeout = timeout if timeout is not None else settings.xl_timeout
        self._info: XlInfo | None = None

    def _run(self) -> str:
        cmd = [self._command, "info", "-n"]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            raise ToolstackError(f"{self._command} not found") from e
        except subprocess.TimeoutExpired as e:
            raise ToolstackError(f"{' '.join(cmd)} timed out after {self._timeout}s") from e
        except OSError as e:
            raise ToolstackError(f"Failed to run {' '.join(cmd)}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise ToolstackError(f"{' '.join(cmd)} exited with {result.returncode}: {stderr}")
        # xen_commandline and friends are not guaranteed to be UTF-8
        return result.stdout.decode(errors="replace")

    @property
    def info(self) -> XlInfo:
        """Lazy-load and parse ``xl info -n``."""
        if self._info is None:
            output = self._run()
            self._info = parse_xl_info(output)
            logger.debug(
                "Parsed xl info: %d fields, %d cpus, %d nodes",
                len(self._info.fields), len(self._info.cpu_rows), len(self._info.numa_rows),
            )
        return self._info

    def get_physinfo(self) -> PhysInfo:
        return self.info.physinfo()

    def get_numainfo(self) -> list[NumaNodeInfo] | None:
        if not self.info.numa_rows:
            return None
        return self.info.numainfo()

    def get_cpu_topology(self) -> list[CpuTopologyEntry] | None:
        if not self.info.cpu_rows:
            return None
        return self.info.cpu_topology()

    def get_version_info(self) -> VersionInfo:
        return self.info.version_info()
