import asyncio
import logging
import time

from .errors import ConfigError, RefreshError
from .refresher import Refresher

class Scheduler:
    """Drives the refresher on a fixed interval from one background task.

    Ticks fall on the grid start + k * interval. Cycles never overlap: a cycle
    that runs past one or more ticks is followed by a single immediate cycle,
    then the grid resumes. Missed ticks are not replayed.
    """

    def __init__(self, refresher: Refresher, interval_s: float, initial_run: bool = True):
        if interval_s <= 0:
            raise ConfigError("refresh_interval must be greater than 0")
        self.refresher = refresher
        self.interval_s = interval_s
        self.initial_run = initial_run
        self._log = logging.getLogger(__name__)
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()
        self.cycles: int = 0
        self.last_cycle_s: float | None = None

    async def start(self):
        self._stopping.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        self._stopping.set()
        if self._task:
            # abort an in-flight cycle instead of waiting for the speedtest
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        loop = asyncio.get_running_loop()
        if self.initial_run:
            await self._cycle()
        next_tick = loop.time() + self.interval_s
        while not self._stopping.is_set():
            delay = next_tick - loop.time()
            if delay > 0 and await self._wait_stopping(delay):
                return
            await self._cycle()
            next_tick += self.interval_s
            now = loop.time()
            if next_tick <= now:
                # overran: one pending tick fires now, the rest are dropped
                skipped = int((now - next_tick) // self.interval_s)
                next_tick += skipped * self.interval_s

    async def _wait_stopping(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _cycle(self):
        t0 = time.monotonic()
        status = "ok"
        try:
            await self.refresher.run()
        except asyncio.CancelledError:
            status = "cancelled"
            raise
        except RefreshError as e:
            status = "error"
            self._log.error(
                "speedtest failed",
                extra={"event": "refresh.error", "extra_fields": {"error": str(e)}},
            )
        except Exception as e:
            status = "error"
            self._log.exception(
                "refresh cycle crashed",
                extra={"event": "refresh.error", "extra_fields": {"error": repr(e)}},
            )
        finally:
            self.last_cycle_s = time.monotonic() - t0
            self.cycles += 1
            self._log.info(
                "refresh",
                extra={
                    "event": "refresh.run",
                    "extra_fields": {
                        "status": status,
                        "cycle_s": round(self.last_cycle_s, 3),
                        "cycles": self.cycles,
                    },
                },
            )
