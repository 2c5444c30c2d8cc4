"""Description of the machine's physical CPUs, cores and logical processors."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

_PROC_CPUINFO = Path("/proc/cpuinfo")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Core:
    """A physical core and the logical processors (hyperthreads) it runs."""

    core_id: int
    processors: list[int] = field(default_factory=list)


@dataclass
class PhysicalCpu:
    """One CPU package (socket) and its cores, keyed by core id."""

    physical_id: int
    cores: dict[int, Core] = field(default_factory=dict)

    def core(self, core_id: int) -> Core:
        """Return the core with ``core_id``, creating it if it is not known yet."""
        return self.cores.setdefault(core_id, Core(core_id))


@dataclass
class CpuInfo:
    """All CPU packages of the system, keyed by physical id."""

    physical_cpus: dict[int, PhysicalCpu] = field(default_factory=dict)

    def physical_cpu(self, physical_id: int) -> PhysicalCpu:
        """Return the package with ``physical_id``, creating it if needed."""
        return self.physical_cpus.setdefault(physical_id, PhysicalCpu(physical_id))

    def cores(self) -> Iterator[Core]:
        """Yield every core, ordered by physical id and then core id."""
        for physical_id in sorted(self.physical_cpus):
            cores = self.physical_cpus[physical_id].cores
            for core_id in sorted(cores):
                yield cores[core_id]

    def processors(self) -> Iterator[int]:
        """Yield every logical processor id in core order."""
        for core in self.cores():
            yield from core.processors


def _extract_value(line: str) -> int:
    _, colon, rest = line.partition(":")
    if not colon:
        return -1
    match = _LEADING_INT.match(rest)
    if match is None:
        raise ValueError(f"invalid number in cpuinfo line: {line!r}")
    return int(match.group(1))


def parse_proc_cpuinfo(text: str) -> CpuInfo:
    """Build a CpuInfo from the contents of ``/proc/cpuinfo``.

    Raises ValueError if a relevant line holds no number after its colon.
    """
    info = CpuInfo()
    processor_id = core_id = physical_id = -1

    for line in text.splitlines():
        if "processor" in line:
            processor_id = _extract_value(line)
        elif "core id" in line:
            core_id = _extract_value(line)
        elif "physical id" in line:
            physical_id = _extract_value(line)

        if core_id != -1 and processor_id != -1 and physical_id != -1:
            info.physical_cpu(physical_id).core(core_id).processors.append(processor_id)
            processor_id = core_id = physical_id = -1

    return info


def flat_cpu_info(count: int) -> CpuInfo:
    """One package with ``count`` cores of a single processor each."""
    info = CpuInfo()
    package = info.physical_cpu(0)
    for index in range(count):
        package.cores[index] = Core(index, [index])
    return info


def get_cpu_info() -> CpuInfo:
    """Describe the CPUs of the running system."""
    if sys.platform.startswith("linux"):
        try:
            text = _PROC_CPUINFO.read_text(encoding="utf-8", errors="replace")
        except OSError:
            text = ""
        return parse_proc_cpuinfo(text)
    return flat_cpu_info(os.cpu_count() or 0)