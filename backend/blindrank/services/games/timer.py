import logging
import threading
import time
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class RoundTimer:
    """Countdown to a round deadline.

    - ``arm(key, deadline)`` starts counting; re-arming with the same key is
      a no-op, so a deadline never fires twice
    - a new key supersedes the old one
    - ``on_expire(key)`` runs once per key when the remaining time hits zero
    - ``on_overdue(key)``, when given, runs on every later tick until the
      key changes, so the owner can retry a transition that failed
    - ``cancel()`` stops callbacks for good once it returns

    With a ``spawn`` function (``socketio.start_background_task``) a worker
    polls every ``interval`` seconds. Without one, the owner calls ``tick``.
    """

    def __init__(
        self,
        on_expire: Callable[[Hashable], None],
        on_tick: Optional[Callable[[float], None]] = None,
        on_overdue: Optional[Callable[[Hashable], None]] = None,
        interval: float = 0.2,
        clock: Callable[[], float] = time.time,
        spawn: Optional[Callable] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.on_overdue = on_overdue
        self.interval = interval
        self.clock = clock
        self._spawn = spawn
        self._sleep = sleep
        self._lock = threading.RLock()
        self._generation = 0
        self._key = None
        self._deadline = None
        self._fired = False

    @property
    def key(self):
        return self._key

    @property
    def armed(self) -> bool:
        return self._key is not None

    def arm(self, key: Hashable, deadline: float) -> bool:
        """Start counting down to ``deadline``. Returns False if already armed for ``key``."""
        with self._lock:
            if key == self._key:
                return False
            self._generation += 1
            generation = self._generation
            self._key = key
            self._deadline = float(deadline)
            self._fired = False
        logger.info(f"[timer-set] key={key} deadline={deadline}")
        if self._spawn is not None:
            self._spawn(self._run, generation)
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._key is not None:
                logger.info(f"[timer-cancel] key={self._key}")
            self._generation += 1
            self._key = None
            self._deadline = None
            self._fired = False

    def remaining(self, now: Optional[float] = None) -> float:
        with self._lock:
            if self._deadline is None:
                return 0.0
            current = self.clock() if now is None else now
            return max(0.0, self._deadline - current)

    def tick(self, now: Optional[float] = None, generation: Optional[int] = None) -> float:
        """Report the remaining time and fire the expiry callback when due.

        Callbacks run under the timer lock so a concurrent ``cancel`` waits
        for them and nothing fires after it.
        """
        with self._lock:
            if self._key is None:
                return 0.0
            if generation is not None and generation != self._generation:
                return 0.0
            remaining = self.remaining(now)
            if self.on_tick:
                self.on_tick(remaining)
            if remaining <= 0 and self._key is not None:
                key = self._key
                if not self._fired:
                    self._fired = True
                    logger.info(f"[timer-fire] key={key}")
                    self.on_expire(key)
                elif self.on_overdue:
                    self.on_overdue(key)
            return remaining

    def _run(self, generation: int) -> None:
        while True:
            with self._lock:
                if generation != self._generation:
                    return
                if self._fired and self.on_overdue is None:
                    return
            self.tick(generation=generation)
            self._sleep(self.interval)
