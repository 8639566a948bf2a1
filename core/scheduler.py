import asyncio
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from shared.logging.logger import get_logger

log = get_logger("core.scheduler")

Callback = Callable[[], Awaitable[None]]


class TimerScheduler:
    """
    Named one-shot timers on the running event loop.

    - Scheduling a name replaces any pending timer with that name
    - Recurring work reschedules itself only after its callback finished,
      so a timer never overlaps with its own previous run
    - Once closed, nothing new is scheduled
    """

    def __init__(self) -> None:
        self._timers: Dict[str, asyncio.Task] = {}
        self._closed = False

    # ------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> List[str]:
        return sorted(name for name, task in list(self._timers.items()) if not task.done())

    def schedule(self, name: str, delay: float, callback: Callback) -> Optional[asyncio.Task]:
        if self._closed:
            log.debug(f"[timers] '{name}' not scheduled (scheduler closed)")
            return None

        self.cancel(name)
        task = asyncio.create_task(self._fire(name, delay, callback))
        self._timers[name] = task
        log.debug(f"[timers] '{name}' scheduled in {delay:.1f}s")
        return task

    def every(self, name: str, interval: float, callback: Callback) -> Optional[asyncio.Task]:
        async def _tick() -> None:
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"[timers] '{name}' callback failed: {e}")
            self.schedule(name, interval, _tick)

        return self.schedule(name, interval, _tick)

    # ------------------------------------------------------------

    async def _fire(self, name: str, delay: float, callback: Callback) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            await callback()
        except asyncio.CancelledError:
            log.debug(f"[timers] '{name}' cancelled")
            raise
        except Exception as e:
            log.error(f"[timers] '{name}' callback failed: {e}")
        finally:
            if self._timers.get(name) is asyncio.current_task():
                del self._timers[name]

    def cancel(self, name: str) -> None:
        task = self._timers.pop(name, None)
        if task is None or task.done():
            return
        # A timer cancelling its own name simply forgets itself
        if task is asyncio.current_task():
            return
        task.cancel()

    def cancel_all(self, names: Optional[Iterable[str]] = None) -> None:
        targets = list(self._timers) if names is None else list(names)
        for name in targets:
            self.cancel(name)

    def close(self) -> None:
        self._closed = True
        self.cancel_all()

    async def drain(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._timers.values() if t is not current and not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
