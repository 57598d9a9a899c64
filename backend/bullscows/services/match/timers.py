"""Timers for the match core: startup grace, turn and disconnect grace.

Every timer is a ``TimerSlot`` owned by a player or a session. Arming or
cancelling a slot bumps its generation; a callback only runs when the
generation it captured at arm time is still current. That check happens
under the scheduler lock, the same lock every inbound event takes, so a
timer can never act on state that changed after it was scheduled.
"""
import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

STARTUP_GRACE = 'startup_grace'
TURN = 'turn'
DISCONNECT_GRACE = 'disconnect_grace'

_log = logging.getLogger(__name__)


class Scheduler:
    """Runs callbacks after a delay, serialized on ``lock``."""

    def __init__(self, lock=None, logger=None):
        self.lock = lock or threading.RLock()
        self.logger = logger or _log

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        raise NotImplementedError

    def _run(self, callback: Callable[[], None]) -> None:
        with self.lock:
            callback()


class SocketIOScheduler(Scheduler):
    """Schedules on Flask-SocketIO background tasks.

    ``socketio.sleep`` keeps this cooperative under eventlet/gevent and
    falls back to ``time.sleep`` in threading mode.
    """

    def __init__(self, socketio, lock=None, logger=None, heartbeat_sec: int = 0):
        super().__init__(lock=lock, logger=logger)
        self.socketio = socketio
        self.heartbeat_sec = heartbeat_sec

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self.socketio.start_background_task(self._worker, max(0.0, delay), callback)

    def _worker(self, delay: float, callback: Callable[[], None]) -> None:
        hb = self.heartbeat_sec
        if hb and hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                self.socketio.sleep(step)
                slept += step
                self.logger.info(f"[timer-heartbeat] remaining={max(0.0, delay - slept):.1f}s")
        else:
            self.socketio.sleep(delay)
        try:
            self._run(callback)
        except Exception:
            # Background task boundary: nothing above us to report to.
            self.logger.exception("[timer-error] callback failed")


class ManualScheduler(Scheduler):
    """Virtual clock for tests; callbacks fire only from ``advance``."""

    def __init__(self, start: float = 0.0, lock=None, logger=None):
        super().__init__(lock=lock, logger=logger)
        self._now = start
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._seq), callback))

    @property
    def pending(self) -> int:
        return len(self._queue)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, callback = heapq.heappop(self._queue)
            self._now = due
            self._run(callback)
        self._now = target


class TimerSlot:
    """One cancellable timer carrying a generation token."""

    def __init__(self, kind: str, label: str, logger=None):
        self.kind = kind
        self.label = label
        self.logger = logger or _log
        self.generation = 0
        self.deadline: Optional[float] = None

    @property
    def armed(self) -> bool:
        return self.deadline is not None

    def arm(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]) -> int:
        """(Re)start the timer; any earlier arming becomes stale."""
        self.generation += 1
        generation = self.generation
        self.deadline = scheduler.now() + delay
        self.logger.info(
            f"[timer-set] {self.label} kind={self.kind} gen={generation} duration={delay}s deadline={self.deadline}"
        )

        def _fire():
            if generation != self.generation:
                self.logger.info(
                    f"[timer-abort] {self.label} kind={self.kind} gen={generation} current={self.generation}"
                )
                return
            self.deadline = None
            self.logger.info(f"[timer-fire] {self.label} kind={self.kind} gen={generation}")
            callback()

        scheduler.call_later(delay, _fire)
        return generation

    def cancel(self) -> None:
        if self.deadline is not None:
            self.logger.info(f"[timer-cancel] {self.label} kind={self.kind} gen={self.generation}")
        self.generation += 1
        self.deadline = None
