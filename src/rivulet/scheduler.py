"""Pass throttling and sub-render debouncing.

Two cadences drive a streaming render:

- :class:`PassScheduler`, a coalescing trailing-edge throttle. The first
  request arms a short timer; requests arriving while a pass is pending are
  absorbed, and the pass reads whatever source is current when it fires. A
  request made during a pass queues one more. :meth:`PassScheduler.flush`
  cancels the timer and runs the pass at once (end of stream).
- :class:`SubRenderScheduler`, a trailing debounce restarted after every
  pass. Its job is async (the diagram engine) and runs as a single tracked
  task, so two jobs never overlap. A trigger that fires while a job is running
  queues exactly one follow-up run, so the newest diagrams are never left
  pending.

Timers come from a :class:`Clock`. :class:`AsyncioClock` uses the running
event loop; :class:`VirtualClock` is advanced by hand, which makes timing
deterministic in tests.

Example:
    clock = VirtualClock()
    passes = PassScheduler(clock, 0.03, renderer.render_pass)
    passes.request()
    passes.request()        # coalesced
    clock.advance(0.03)     # one pass runs
"""

from __future__ import annotations

import asyncio
import contextvars
import heapq
import itertools
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from rivulet.errors import SchedulerError
from rivulet.utils.logger import get_logger

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Source of one-shot timers."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


class AsyncioClock:
    """Timers on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise SchedulerError("timers need a running event loop") from None
        return loop.call_later(delay, callback)


class VirtualTimer:
    """Handle for a :class:`VirtualClock` timer."""

    __slots__ = ("callback", "cancelled", "context", "when")

    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.context = contextvars.copy_context()
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock:
    """Manually advanced clock.

    Timers fire in due order (ties in scheduling order) when :meth:`advance`
    moves time past them. Callbacks may schedule further timers; those fire in
    the same call if they fall due within the advanced window.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, VirtualTimer]] = []
        self._sequence = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self.now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (timer.when, next(self._sequence), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward, firing due timers. Returns how many fired."""
        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = when
            timer.context.run(timer.callback)
            fired += 1
        self.now = target
        return fired


class PassScheduler:
    """Coalescing trailing-edge throttle for full render passes.

    A request made while the pass itself is running (from a hook, say) is
    kept and arms the timer once that pass returns.

    Args:
        clock: Timer source
        interval: Delay between the first request and the pass
        run_pass: Synchronous pass; must not raise
    """

    def __init__(self, clock: Clock, interval: float, run_pass: Callable[[], Any]) -> None:
        self._clock = clock
        self.interval = interval
        self._run_pass = run_pass
        self._handle: TimerHandle | None = None
        self._running = False
        self._requested = False

    @property
    def pending(self) -> bool:
        """True while a pass is scheduled (or queued behind the running one)."""
        return self._handle is not None or self._requested

    @property
    def running(self) -> bool:
        return self._running

    def request(self) -> bool:
        """Ask for a pass. Returns False if absorbed by one already pending."""
        if self.pending:
            return False
        if self._running:
            self._requested = True
            return True
        self._handle = self._clock.call_later(self.interval, self._fire)
        return True

    def flush(self) -> None:
        """Cancel any pending timer and run the pass now."""
        self.cancel()
        self._execute()

    def cancel(self) -> None:
        self._requested = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._execute()

    def _execute(self) -> None:
        self._running = True
        try:
            self._run_pass()
        finally:
            self._running = False
        if self._requested:
            self._requested = False
            try:
                self._handle = self._clock.call_later(self.interval, self._fire)
            except SchedulerError:
                logger.debug("Follow-up pass dropped: no running event loop")


class SubRenderScheduler:
    """Reentrancy-guarded trailing debounce for async sub-render jobs.

    Every firing, whether from the timer or from :meth:`flush`, runs as the
    one task in ``_task``; a new firing never starts while that task is
    alive.

    Args:
        clock: Timer source
        delay: Quiet period after the last trigger
        job: Coroutine function doing one sub-render firing
    """

    def __init__(self, clock: Clock, delay: float, job: Callable[[], Awaitable[Any]]) -> None:
        self._clock = clock
        self.delay = delay
        self._job = job
        self._handle: TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._rerun = False
        self._stale = False

    @property
    def pending(self) -> bool:
        """True if a firing is scheduled or owed."""
        return self._handle is not None or self._rerun or self._stale

    @property
    def busy(self) -> bool:
        """True while a job is running."""
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        """(Re)start the debounce timer."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            self._handle = self._clock.call_later(self.delay, self._fire)
        except SchedulerError:
            # Outside an event loop (a synchronous flush); flush() catches up.
            self._stale = True
            logger.debug("Sub-render deferred: no running event loop")

    def cancel(self) -> None:
        """Cancel the timer and any running job."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._rerun = False
        self._stale = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def flush(self) -> None:
        """Run a firing now, after any job in progress, and wait for it."""
        await self.wait()
        # No await between here and _start: nothing else can begin a firing.
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._rerun = False
        self._start(asyncio.get_running_loop())
        await self.wait()

    async def wait(self) -> None:
        """Wait until no job is running."""
        while self._task is not None and not self._task.done():
            await asyncio.wait([self._task])

    def _fire(self) -> None:
        self._handle = None
        if self.busy:
            self._rerun = True
            logger.debug("Sub-render already running; queued one more pass")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._stale = True
            logger.debug("Sub-render deferred: no running event loop")
            return
        self._start(loop)

    def _start(self, loop: asyncio.AbstractEventLoop) -> None:
        self._stale = False
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        await self._run_job()
        if self._rerun:
            self._rerun = False
            self.trigger()

    async def _run_job(self) -> None:
        try:
            await self._job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sub-render job failed")
