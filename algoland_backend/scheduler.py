"""Cancellable periodic background task."""

import threading

from loguru import logger


class PeriodicTask:
    """Runs fn immediately, then every `interval` seconds, until stopped.

    Each iteration has its own error boundary: a failing run is logged and
    the next tick still happens.
    """

    def __init__(self, name, interval, fn):
        self.name = name
        self.interval = interval
        self.fn = fn
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def run_once(self):
        try:
            self.fn()
        except Exception as exc:
            logger.warning(f"[{self.name}] Background run failed: {exc}")
            return False
        return True

    def _loop(self):
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval):
                break
