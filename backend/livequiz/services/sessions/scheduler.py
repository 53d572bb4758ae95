import threading
import time
from typing import Callable, List, Optional


class CancellableTimer:
    """Handle for one scheduled callback. ``cancel`` is idempotent."""

    def __init__(self, name: str, delay: float, callback: Callable[[], None], deadline: float):
        self.name = name
        self.delay = delay
        self.deadline = deadline
        self._callback = callback
        self._cancelled = threading.Event()
        self.fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def wait(self) -> bool:
        """Block until the delay elapses; True if still live afterwards."""
        return not self._cancelled.wait(self.delay)

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self._callback()

    def __repr__(self):
        return f"<CancellableTimer {self.name} delay={self.delay}s cancelled={self.cancelled}>"


class BackgroundScheduler:
    """Runs each timer on a Socket.IO background task."""

    def __init__(self, socketio, logger):
        self.socketio = socketio
        self.logger = logger

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> CancellableTimer:
        timer = CancellableTimer(name, delay, callback, deadline=time.time() + delay)
        self.logger.debug(f"[timer-set] name={name} delay={delay}s")

        def _worker():
            if not timer.wait():
                self.logger.debug(f"[timer-abort] name={name} cancelled")
                return
            try:
                timer.fire()
            except Exception:
                self.logger.exception(f"[timer-error] name={name}")

        self.socketio.start_background_task(_worker)
        return timer


class ManualScheduler:
    """Keeps timers pending until fired explicitly; used when TESTING."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.timers: List[CancellableTimer] = []

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> CancellableTimer:
        timer = CancellableTimer(name, delay, callback, deadline=self.clock() + delay)
        self.timers.append(timer)
        return timer

    def pending(self, name: Optional[str] = None) -> List[CancellableTimer]:
        return [
            t for t in self.timers
            if not t.cancelled and not t.fired and (name is None or t.name == name)
        ]

    def fire(self, name: str) -> CancellableTimer:
        """Fire the earliest pending timer with the given name."""
        live = self.pending(name)
        if not live:
            raise LookupError(f'no pending timer named {name!r}')
        timer = live[0]
        timer.fire()
        return timer
