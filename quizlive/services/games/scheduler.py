import logging
import threading
import time
from typing import Any, Callable, List, Optional


class ScheduledCall:
    """A delayed callback tagged with the session and phase token it belongs to.

    `generation` is bumped whenever the pending worker is invalidated
    (cancel/suspend/resume) so a worker that wakes up late can tell it is stale.
    """

    def __init__(self, key: str, token: int, delay: float, callback: Callable, args: tuple, label: str):
        self.key = key
        self.token = token
        self.label = label
        self.callback = callback
        self.args = args
        self.remaining = max(0.0, float(delay))
        self.deadline: Optional[float] = None
        self.generation = 0
        self.cancelled = False
        self.suspended = False
        self.fired = False

    @property
    def pending(self):
        return not (self.cancelled or self.fired)

    def __repr__(self):
        return f'<ScheduledCall {self.label} key={self.key} token={self.token}>'


class Scheduler:
    """Runs delayed callbacks on Socket.IO background tasks.

    Cancellation and suspension never interrupt a sleeping worker; the worker
    re-checks its call's generation when it wakes and drops itself if stale.
    """

    def __init__(self, start_task: Callable[..., Any] = None, sleep: Callable[[float], Any] = None,
                 logger: logging.Logger = None):
        self._start_task = start_task
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self.logger = logger or logging.getLogger(__name__)

    def now(self) -> float:
        return time.monotonic()

    def schedule(self, delay: float, callback: Callable, *args, key: str = '', token: int = 0,
                 label: str = 'timer') -> ScheduledCall:
        call = ScheduledCall(key, token, delay, callback, args, label)
        with self._lock:
            generation = self._arm(call)
        self.logger.info(f"[timer-set] key={key} label={label} token={token} delay={call.remaining}s")
        self._start_worker(call, generation, call.remaining)
        return call

    def cancel(self, call: Optional[ScheduledCall]) -> None:
        if call is None:
            return
        with self._lock:
            if not call.pending:
                return
            call.cancelled = True
            call.generation += 1
        self.logger.info(f"[timer-cancel] key={call.key} label={call.label} token={call.token}")

    def suspend(self, call: Optional[ScheduledCall]) -> None:
        if call is None:
            return
        with self._lock:
            if not call.pending or call.suspended:
                return
            call.remaining = max(0.0, call.deadline - self.now())
            call.suspended = True
            call.generation += 1
        self.logger.info(f"[timer-suspend] key={call.key} label={call.label} remaining={call.remaining:.2f}s")

    def resume(self, call: Optional[ScheduledCall]) -> None:
        if call is None:
            return
        with self._lock:
            if not call.pending or not call.suspended:
                return
            call.suspended = False
            generation = self._arm(call)
        self._start_worker(call, generation, call.remaining)
        self.logger.info(f"[timer-resume] key={call.key} label={call.label} remaining={call.remaining:.2f}s")

    def remaining(self, call: Optional[ScheduledCall]) -> float:
        if call is None or not call.pending:
            return 0.0
        with self._lock:
            if call.suspended:
                return call.remaining
            return max(0.0, call.deadline - self.now())

    def _arm(self, call: ScheduledCall) -> int:
        # caller holds self._lock; the worker is started after it is released
        call.generation += 1
        call.deadline = self.now() + call.remaining
        return call.generation

    def _start_worker(self, call: ScheduledCall, generation: int, delay: float) -> None:
        if self._start_task is not None:
            self._start_task(self._worker, call, generation, delay)
        else:
            worker = threading.Thread(target=self._worker, args=(call, generation, delay), daemon=True)
            worker.start()

    def _worker(self, call: ScheduledCall, generation: int, delay: float) -> None:
        if delay:
            self._sleep(delay)
        self._fire(call, generation)

    def _fire(self, call: ScheduledCall, generation: int) -> None:
        with self._lock:
            if not call.pending or call.suspended or call.generation != generation:
                return
            call.fired = True
        self.logger.info(f"[timer-fire] key={call.key} label={call.label} token={call.token}")
        try:
            call.callback(*call.args)
        except Exception:
            self.logger.exception(f"[timer-error] key={call.key} label={call.label} token={call.token}")


class ManualScheduler(Scheduler):
    """Scheduler driven by an explicit clock, for deterministic tests.

    Nothing fires until `advance()` moves the clock past a deadline; due calls
    run synchronously on the caller's thread in deadline order.
    """

    def __init__(self, logger: logging.Logger = None):
        super().__init__(logger=logger)
        self.clock = 0.0
        self._calls: List[ScheduledCall] = []

    def now(self) -> float:
        return self.clock

    def _start_worker(self, call, generation, delay):
        if call not in self._calls:
            self._calls.append(call)

    def pending_calls(self) -> List[ScheduledCall]:
        return [c for c in self._calls if c.pending]

    def advance(self, seconds: float) -> None:
        target = self.clock + seconds
        while True:
            due = [c for c in self._calls if c.pending and not c.suspended and c.deadline <= target]
            if not due:
                break
            call = min(due, key=lambda c: c.deadline)
            self.clock = max(self.clock, call.deadline)
            self._fire(call, call.generation)
        self.clock = target
        self._calls = [c for c in self._calls if c.pending]

    def run_pending(self) -> None:
        """Fire everything currently due without moving the clock."""
        self.advance(0)
