"""Process-local clock with second granularity, relative to process start."""

from __future__ import annotations

import logging
import time

log = logging.getLogger(__name__)

#: Largest expiry treated as an offset from now (30 days); larger values are
#: absolute unix timestamps.
TIME_MAXDELTA = 60 * 60 * 24 * 30

UINT32_MAX = 0xFFFFFFFF
NEVER_EXPIRE = UINT32_MAX - 1


class Clock:
    """A cached clock counting seconds since the process started.

    ``start`` is the absolute unix time the clock treats as its zero point.
    ``now`` holds the cached number of seconds since ``start`` and is only
    refreshed by :meth:`update`.
    """

    def __init__(self, start: int | None = None) -> None:
        self.now = 0
        self.stopped_at: int | None = None
        if start is None:
            self.setup()
        else:
            self.start = int(start)

    def setup(self) -> None:
        """Record the start time, set back 2 seconds so uptime is never zero."""
        self.start = int(time.time()) - 2
        self.stopped_at = None
        log.info("timer started at %d(2 sec setback)", self.start)

    def teardown(self) -> int:
        """Record and return the absolute time the clock is retired."""
        self.stopped_at = int(time.time())
        log.info("timer ended at %d", self.stopped_at)
        return self.stopped_at

    def update(self) -> None:
        """Refresh the cached relative time from the system clock."""
        t = int(time.time())
        if t < 0:
            log.warning("get current time failed: negative timestamp %d", t)
            return
        self.now = (t - self.start) & UINT32_MAX
        log.debug("internal timer updated to %d", self.now)

    def now_abs(self) -> int:
        """Return the current absolute unix time as seen by the cache."""
        return self.start + self.now

    def reltime(self, t: int) -> int:
        """Convert a protocol expiry value into time relative to start.

        Zero means never expire.  Values up to :data:`TIME_MAXDELTA` are offsets
        from now; larger ones are absolute unix timestamps.
        """
        if t == 0:
            return NEVER_EXPIRE
        if t > TIME_MAXDELTA:
            # An absolute time at or before start would underflow and look
            # like "never"; expire it one second after start instead.
            if t <= self.start:
                return 1
            return (t - self.start) & UINT32_MAX
        return (t + self.now) & UINT32_MAX