from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Tuple

from adhdrive.errors import PersistenceFailure

from .gateway import PersistenceGateway

_LOGGER = logging.getLogger(__name__)


class PersistenceWriter:
    """Fire-and-forget writes to a gateway from a daemon thread.

    ``submit`` never blocks and never raises. When the queue is full the
    oldest pending write is dropped. Failed writes are logged and the last
    message is kept on ``error``.
    """

    def __init__(self, gateway: PersistenceGateway, *, queue_size: int = 100) -> None:
        self.gateway = gateway
        self.queue: "queue.Queue[Tuple[str, str]]" = queue.Queue(maxsize=max(1, queue_size))
        self.stop_event = threading.Event()
        self.error: str | None = None
        self.failures = 0
        self.thread = threading.Thread(target=self._run, name="adhdrive-writer", daemon=True)
        self.thread.start()

    def submit(self, key: str, value: str) -> bool:
        if self.stop_event.is_set():
            return False
        item = (key, value)
        try:
            self.queue.put_nowait(item)
        except queue.Full:
            try:
                dropped = self.queue.get_nowait()
                self.queue.task_done()
                _LOGGER.warning("Persistence queue full; dropped pending write for %s", dropped[0])
                self.queue.put_nowait(item)
            except (queue.Empty, queue.Full):
                return False
        return True

    def _write(self, key: str, value: str) -> None:
        try:
            ok = self.gateway.set(key, value)
        except PersistenceFailure as exc:
            ok = False
            self.error = str(exc)
        except Exception as exc:
            ok = False
            self.error = f"{type(exc).__name__}: {exc}"
        else:
            if not ok:
                self.error = f"gateway refused write for {key}"
        if not ok:
            self.failures += 1
            _LOGGER.warning("Persisting %s failed: %s", key, self.error)

    def _run(self) -> None:
        while not self.stop_event.is_set():
            try:
                key, value = self.queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._write(key, value)
            finally:
                self.queue.task_done()
        while True:
            try:
                key, value = self.queue.get_nowait()
            except queue.Empty:
                break
            try:
                self._write(key, value)
            finally:
                self.queue.task_done()

    def pending(self) -> int:
        return self.queue.unfinished_tasks

    def flush(self, timeout_s: float = 2.0) -> bool:
        """Wait until every submitted write has been attempted."""
        deadline = time.monotonic() + timeout_s
        while self.pending() > 0:
            if time.monotonic() >= deadline or not self.thread.is_alive():
                return False
            time.sleep(0.01)
        return True

    def stop(self, timeout_s: float = 2.0) -> None:
        self.stop_event.set()
        if self.thread.is_alive() and threading.current_thread() is not self.thread:
            self.thread.join(timeout=timeout_s)
