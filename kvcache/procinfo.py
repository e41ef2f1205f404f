"""Process information metrics: pid, uptime, version and resource usage."""

from __future__ import annotations

import logging
import os
import resource
from dataclasses import dataclass, field

from kvcache.clock import Clock

log = logging.getLogger(__name__)


def _metric(kind: str, description: str, default: float = 0):
    return field(default=default, metadata={"type": kind, "description": description})


@dataclass
class ProcInfoMetrics:
    """Snapshot of process metrics; field metadata carries type and description."""

    pid: int = _metric("gauge", "pid of current process")
    time: int = _metric("counter", "unix time in seconds")
    uptime: int = _metric("counter", "process uptime in seconds")
    version: int = _metric("counter", "version as an int")
    ru_stime: float = _metric("fpn", "system CPU time", 0.0)
    ru_utime: float = _metric("fpn", "user CPU time", 0.0)
    ru_maxrss: int = _metric("gauge", "max RSS size")
    ru_ixrss: int = _metric("gauge", "text memory size")
    ru_idrss: int = _metric("gauge", "data memory size")
    ru_isrss: int = _metric("gauge", "stack memory size")
    ru_minflt: int = _metric("counter", "pagefalut w/o I/O")
    ru_majflt: int = _metric("counter", "pagefalut w/ I/O")
    ru_nswap: int = _metric("counter", "# times swapped")
    ru_inblock: int = _metric("counter", "real FS input")
    ru_oublock: int = _metric("counter", "real FS output")
    ru_msgsnd: int = _metric("counter", "# IPC messages sent")
    ru_msgrcv: int = _metric("counter", "# IPC messages received")
    ru_nsignals: int = _metric("counter", "# signals delivered")
    ru_nvcsw: int = _metric("counter", "# voluntary CS")
    ru_nivcsw: int = _metric("counter", "# involuntary CS")


_RUSAGE_FIELDS = (
    "ru_maxrss",
    "ru_ixrss",
    "ru_idrss",
    "ru_isrss",
    "ru_minflt",
    "ru_majflt",
    "ru_nswap",
    "ru_inblock",
    "ru_oublock",
    "ru_msgsnd",
    "ru_msgrcv",
    "ru_nsignals",
    "ru_nvcsw",
    "ru_nivcsw",
)


def version_number(major: int, minor: int, patch: int) -> int:
    """Encode a version as the integer ``MMmmpp``."""
    return major * 10000 + minor * 100 + patch


class ProcInfo:
    """Fills a :class:`ProcInfoMetrics` with the current process state."""

    def __init__(
        self,
        metrics: ProcInfoMetrics | None,
        clock: Clock,
        version: tuple[int, int, int],
    ) -> None:
        log.info("set up the util::procinfo module")
        self.metrics = metrics
        self.clock = clock
        self.version = version

    def update(self) -> None:
        """Refresh every metric; does nothing when no metrics are attached."""
        m = self.metrics
        if m is None:
            return
        m.pid = os.getpid()
        m.time = self.clock.now_abs()
        m.uptime = self.clock.now
        m.version = version_number(*self.version)

        usage = resource.getrusage(resource.RUSAGE_SELF)
        m.ru_utime = usage.ru_utime
        m.ru_stime = usage.ru_stime
        for name in _RUSAGE_FIELDS:
            setattr(m, name, getattr(usage, name))