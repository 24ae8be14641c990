#!/usr/bin/env python3
"""
Point-in-time memory reports for the current process.

A MemoryInfoSource answers three questions, mirroring a managed runtime:
how far memory may grow (max), how much is reserved right now (total) and how
much of the reserved space is unused (free). MemoryReporter samples those in
a fixed order and renders them as whole megabytes.
"""
import logging
import os
import resource
from abc import ABC, abstractmethod
from dataclasses import dataclass

import psutil

from harness import MIB

logger = logging.getLogger(__name__)

LABEL_WIDTH = 20
CGROUP_MEMORY_LIMITS = (
    "/sys/fs/cgroup/memory.max",                    # cgroup v2
    "/sys/fs/cgroup/memory/memory.limit_in_bytes",  # cgroup v1
)
REPORT_HEADER = "----- Report -----"
REPORT_FOOTER = "------------------"


def memory_in_mib(memory_in_bytes: int) -> str:
    """Whole megabytes, truncated: 1.5 MiB renders as 1MB."""
    return f"{memory_in_bytes // MIB}MB"


def labeled(label: str, value) -> str:
    return f"{label + ':':<{LABEL_WIDTH}}{value}"


class MemoryInfoSource(ABC):
    """Read-only view of the memory counters the reporter samples."""

    @abstractmethod
    def max_memory(self) -> int:
        ...

    @abstractmethod
    def total_memory(self) -> int:
        ...

    @abstractmethod
    def free_memory(self) -> int:
        ...


class ProcessMemorySource(MemoryInfoSource):
    """
    Process memory as seen by the OS, via psutil.

    total is the virtual size of the process, free is the part of it that is
    not resident, so allocated comes out as the resident set size. max is the
    smallest of the container (cgroup) memory limit, the address space limit
    (RLIMIT_AS) and physical RAM.
    """

    def __init__(self, pid=None, cgroup_limits=CGROUP_MEMORY_LIMITS):
        self.process = psutil.Process(pid or os.getpid())
        self.cgroup_limits = cgroup_limits
        self._max = self._read_max_memory()
        logger.debug(f"Memory ceiling for pid {self.process.pid}: {self._max} bytes")

    def _read_cgroup_limit(self):
        """First limit found in the cgroup files, None when unlimited or absent."""
        for path in self.cgroup_limits:
            try:
                with open(path) as f:
                    value = f.read().strip()
            except OSError:
                continue
            if value == "max":
                return None
            try:
                return int(value)
            except ValueError:
                logger.warning(f"Ignoring unreadable memory limit in {path}: {value!r}")
        return None

    def _read_max_memory(self) -> int:
        limits = [psutil.virtual_memory().total]
        soft, _ = resource.getrlimit(resource.RLIMIT_AS)
        if soft != resource.RLIM_INFINITY and soft > 0:
            limits.append(soft)
        cgroup_limit = self._read_cgroup_limit()
        if cgroup_limit is not None and cgroup_limit > 0:
            limits.append(cgroup_limit)
        return min(limits)

    def max_memory(self) -> int:
        return self._max

    def total_memory(self) -> int:
        return self.process.memory_info().vms

    def free_memory(self) -> int:
        info = self.process.memory_info()
        return max(info.vms - info.rss, 0)


@dataclass(frozen=True)
class MemoryReport:
    max_capacity_bytes: int
    total_capacity_bytes: int
    free_bytes: int
    allocated_bytes: int
    presumably_free_bytes: int

    @classmethod
    def from_counters(cls, max_bytes, total_bytes, free_bytes):
        allocated = total_bytes - free_bytes
        return cls(
            max_capacity_bytes=max_bytes,
            total_capacity_bytes=total_bytes,
            free_bytes=free_bytes,
            allocated_bytes=allocated,
            presumably_free_bytes=max_bytes - allocated,
        )

    def check(self):
        """Raise ValueError if the counters contradict each other."""
        if self.allocated_bytes + self.free_bytes != self.total_capacity_bytes:
            raise ValueError(f"allocated + free != total in {self}")
        if self.allocated_bytes > self.max_capacity_bytes:
            raise ValueError(f"allocated exceeds max capacity in {self}")
        if min(self.total_capacity_bytes, self.free_bytes, self.allocated_bytes) < 0:
            raise ValueError(f"negative counter in {self}")


class MemoryReporter:
    def __init__(self, source: MemoryInfoSource):
        self.source = source

    def max_memory(self) -> int:
        return self.source.max_memory()

    def sample(self) -> MemoryReport:
        """Take one snapshot: max, then total, then free, nothing allocated in between."""
        max_bytes = self.source.max_memory()
        total_bytes = self.source.total_memory()
        free_bytes = self.source.free_memory()
        # total and free are separate reads; allocated must not go negative
        free_bytes = min(free_bytes, total_bytes)
        return MemoryReport.from_counters(max_bytes, total_bytes, free_bytes)

    def format(self, report: MemoryReport) -> list:
        return [
            labeled("Total Heap Size", memory_in_mib(report.total_capacity_bytes)),
            labeled("Allocated", memory_in_mib(report.allocated_bytes)),
            labeled("Presumably free", memory_in_mib(report.presumably_free_bytes)),
            labeled("Definitely free", memory_in_mib(report.free_bytes)),
        ]

    def print_report(self, report=None, footer=True, extra_lines=()):
        if report is None:
            report = self.sample()
        print(REPORT_HEADER)
        for line in extra_lines:
            print(line)
        for line in self.format(report):
            print(line)
        if footer:
            print(REPORT_FOOTER)
        return report
