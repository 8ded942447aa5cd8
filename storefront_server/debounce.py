"""Cancellable delayed calls."""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Delays a call until no new call has been scheduled for `wait` seconds.

    Each schedule cancels the pending one, so only the arguments of the most
    recent call are ever delivered (last-write-wins). `flush()` delivers the
    pending call immediately. Deliveries never overlap, so a slow
    write cannot land after a newer one.
    """

    def __init__(self, func: Callable[..., Any], wait: float = 0.3) -> None:
        self.func = func
        self.wait = wait
        self._lock = threading.Lock()
        self._deliver_lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._args: tuple = ()
        self._generation = 0

    def __call__(self, *args: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._args = args
            self._timer = threading.Timer(self.wait, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _fire(self, generation: int) -> None:
        with self._deliver_lock:
            with self._lock:
                # A newer schedule or a flush superseded this timer
                if generation != self._generation or self._timer is None:
                    return
                self._timer = None
                args = self._args
            self._call(args)

    def _call(self, args: tuple) -> None:
        try:
            self.func(*args)
        except Exception as e:
            logger.error(f"Debounced call failed: {e}", exc_info=True)

    def flush(self) -> bool:
        """Run the pending call now. Returns False if nothing was pending."""
        with self._deliver_lock:
            with self._lock:
                if self._timer is None:
                    return False
                self._timer.cancel()
                self._timer = None
                self._generation += 1
                args = self._args
            self._call(args)
        return True

    def cancel(self) -> None:
        """Drop the pending call without running it."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
