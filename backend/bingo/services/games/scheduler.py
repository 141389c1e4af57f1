from contextlib import nullcontext
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds on a background worker.

    - ``start`` is a no-op while the task is already running, so there is
      never more than one live timer per task
    - ``cancel`` bumps a generation counter; a worker that wakes up under an
      older generation exits without firing
    - ``spawn`` and ``sleep`` default to plain threads; the app wires in
      ``socketio.start_background_task`` and ``socketio.sleep``
    - ``guard`` (a lock) is held while the generation is re-checked and the
      callback runs, so a cancel made under that lock is never outrun
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], None],
        spawn: Optional[Callable] = None,
        sleep: Optional[Callable[[float], None]] = None,
        heartbeat: float = 0,
        guard=None,
    ):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._spawn = spawn or _spawn_thread
        self._sleep = sleep or time.sleep
        self._heartbeat = heartbeat
        self._guard = guard if guard is not None else nullcontext()
        self._generation = 0
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        with self._lock:
            if self._running:
                logger.info(f"[timer-skip] task={self.name} already scheduled")
                return False
            self._running = True
            self._generation += 1
            generation = self._generation
        logger.info(f"[timer-set] task={self.name} interval={self.interval}s generation={generation}")
        self._spawn(self._worker, generation)
        return True

    def cancel(self) -> bool:
        with self._lock:
            if not self._running:
                return False
            self._running = False
            self._generation += 1
        logger.info(f"[timer-cancel] task={self.name}")
        return True

    def _alive(self, generation: int) -> bool:
        return self._running and self._generation == generation

    def _wait(self, generation: int) -> bool:
        if self._heartbeat and self._heartbeat > 0:
            slept = 0.0
            while slept < self.interval:
                step = min(self._heartbeat, self.interval - slept)
                self._sleep(step)
                slept += step
                if not self._alive(generation):
                    return False
                logger.debug(f"[timer-heartbeat] task={self.name} remaining={max(0.0, self.interval - slept)}s")
        else:
            self._sleep(self.interval)
        return self._alive(generation)

    def _fire(self, generation: int) -> bool:
        with self._guard:
            # cancelled (or restarted) between the sleep and taking the guard
            if not self._alive(generation):
                return False
            try:
                self.callback()
            except Exception:
                logger.exception(f"[timer-error] task={self.name}")
        return True

    def _worker(self, generation: int) -> None:
        while self._wait(generation) and self._fire(generation):
            pass
        logger.info(f"[timer-exit] task={self.name} generation={generation}")


def _spawn_thread(target, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker
