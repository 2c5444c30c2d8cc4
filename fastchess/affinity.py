"""Pinning engine processes to CPUs."""

from __future__ import annotations

import logging
import os
import threading
from enum import IntEnum
from typing import Callable, Sequence

from fastchess.cpuinfo import CpuInfo, get_cpu_info

log = logging.getLogger(__name__)


def set_affinity(cpus: Sequence[int], pid: int) -> bool:
    """Restrict process ``pid`` to ``cpus``; False where that is not possible."""
    setter: Callable[[int, set[int]], None] | None = getattr(os, "sched_setaffinity", None)
    if setter is None:
        return False
    log.debug("Setting affinity mask for process pid: %s", pid)
    try:
        setter(pid, set(cpus))
    except OSError as err:
        log.warning("Failed to set affinity for pid %s: %s", pid, err)
        return False
    return True


class _Group(IntEnum):
    HT_1 = 0
    HT_2 = 1


class AffinityProcessor:
    """A set of CPUs handed out by an AffinityManager; released when done."""

    def __init__(self, cpus: Sequence[int]) -> None:
        self.cpus = list(cpus)
        self.available = True

    def release(self) -> None:
        """Return the CPUs to the pool."""
        self.available = True

    def __enter__(self) -> AffinityProcessor:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"AffinityProcessor(cpus={self.cpus!r}, available={self.available})"


class AffinityManager:
    """Hands out CPUs so that concurrent engines do not share physical cores.

    Hyperthreads are split into two groups: the first processor of every core
    goes into the first group, the others into the second. The first group is
    used up before the second.
    """

    def __init__(
        self,
        use_affinity: bool,
        cpus: Sequence[int] = (),
        threads_per_engine: int = 1,
        cpu_info: CpuInfo | None = None,
    ) -> None:
        self.use_affinity = use_affinity and threads_per_engine <= 1
        self._lock = threading.Lock()
        self._cores: tuple[list[AffinityProcessor], list[AffinityProcessor]] = ([], [])
        self._null_core = AffinityProcessor([])

        if self.use_affinity:
            if cpus:
                self._setup_selected_cores(cpus)
            else:
                self._setup_cores(cpu_info if cpu_info is not None else get_cpu_info())
            log.debug("Using affinity")

    def _setup_cores(self, cpu_info: CpuInfo) -> None:
        with self._lock:
            for core in cpu_info.cores():
                for index, processor in enumerate(core.processors):
                    group = _Group.HT_1 if index % 2 == 0 else _Group.HT_2
                    self._cores[group].append(AffinityProcessor([processor]))

    def _setup_selected_cores(self, cpus: Sequence[int]) -> None:
        with self._lock:
            self._cores[_Group.HT_1].extend(AffinityProcessor([cpu]) for cpu in cpus)

    def consume(self) -> AffinityProcessor:
        """Take an unused core; raises RuntimeError when none is left."""
        if not self.use_affinity:
            return self._null_core

        with self._lock:
            if not any(self._cores):
                log.error("No cores available")
                raise RuntimeError("No cores available")

            for group in self._cores:
                for core in group:
                    if core.available:
                        core.available = False
                        return core

        log.error("No cores available, all are in use")
        raise RuntimeError("No cores available")