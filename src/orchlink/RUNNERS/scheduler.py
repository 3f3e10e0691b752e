# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Fixed-delay periodic execution on a shared worker pool.
"""
import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Handle on a periodic task.
    The next tick is queued only once the previous one has returned.
    """

    def __init__(self, name: str, fn: Callable[[], None], delay: float,
                 scheduler: "FixedDelayScheduler"):
        self.name = name
        self.delay = delay
        self._fn = fn
        self._scheduler = scheduler
        self._cancelled = threading.Event()
        self.runs = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Stop future ticks. A tick already running is left to finish.
        """
        if not self._cancelled.is_set():
            self._cancelled.set()
            self._scheduler._wake()
            logger.debug("Cancelled periodic task %s", self.name)

    def _run(self) -> None:
        if self.cancelled:
            return
        try:
            self._fn()
        except Exception:
            logger.exception("Periodic task %s failed, keeping schedule", self.name)
        finally:
            self.runs += 1
            if not self.cancelled:
                self._scheduler._reschedule(self)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"ScheduledTask({self.name}, every {self.delay}s, {state})"


class FixedDelayScheduler:
    """
    Runs periodic tasks with a fixed delay between the end of one tick and
    the start of the next. A dispatcher thread hands due tasks to a pool of
    worker threads, so different tasks may run concurrently.
    """

    def __init__(self, max_workers: int = 4, name: str = "orchlink"):
        """
        Initializes the scheduler.

        :param max_workers: Size of the worker pool.
        :param name: Prefix for worker thread names.
        """
        if max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix=f"{name}-worker")
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._running = False
        self._shutdown = False
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Starts the dispatcher thread. Scheduling a task starts it implicitly.
        """
        with self._cond:
            if self._shutdown:
                raise RuntimeError("Scheduler has been shut down")
            if self._running:
                return
            self._running = True
        self._thread = threading.Thread(target=self._dispatch_loop,
                                        name=f"{self.name}-dispatcher", daemon=True)
        self._thread.start()

    def schedule_with_fixed_delay(self, fn: Callable[[], None], initial_delay: float,
                                  delay: float, name: Optional[str] = None) -> ScheduledTask:
        """
        Schedule fn to run after initial_delay, then delay seconds after each run.

        Raises:
            ConfigurationError: If delay is not strictly positive or initial_delay is negative.
            RuntimeError: If the scheduler has been shut down.
        """
        if delay <= 0:
            raise ConfigurationError("delay must not be negative or zero")
        if initial_delay < 0:
            raise ConfigurationError("initial delay must not be negative")

        self.start()
        task = ScheduledTask(name or getattr(fn, "__name__", "task"), fn, delay, self)
        self._enqueue(task, time.monotonic() + initial_delay)
        logger.debug("Scheduled %r", task)
        return task

    def shutdown(self, wait: bool = True) -> None:
        """
        Stops dispatching and shuts the worker pool down.

        :param wait: Wait for running ticks to finish.
        """
        with self._cond:
            self._shutdown = True
            self._running = False
            self._queue.clear()
            self._cond.notify_all()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._executor.shutdown(wait=wait)

    def pending(self) -> int:
        """Number of queued, non-cancelled tasks."""
        with self._cond:
            return sum(1 for _, _, task in self._queue if not task.cancelled)

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def _enqueue(self, task: ScheduledTask, due: float) -> None:
        with self._cond:
            if self._shutdown:
                raise RuntimeError("Scheduler has been shut down")
            heapq.heappush(self._queue, (due, next(self._counter), task))
            self._cond.notify_all()

    def _reschedule(self, task: ScheduledTask) -> None:
        with self._cond:
            if self._shutdown:
                return
            heapq.heappush(self._queue, (time.monotonic() + task.delay,
                                         next(self._counter), task))
            self._cond.notify_all()

    def _dispatch_loop(self) -> None:
        with self._cond:
            while self._running:
                while self._queue and self._queue[0][2].cancelled:
                    heapq.heappop(self._queue)
                if not self._queue:
                    self._cond.wait()
                    continue

                due, _, task = self._queue[0]
                remaining = due - time.monotonic()
                if remaining > 0:
                    self._cond.wait(timeout=remaining)
                    continue

                heapq.heappop(self._queue)
                try:
                    self._executor.submit(task._run)
                except RuntimeError:
                    # Pool already shut down
                    return
