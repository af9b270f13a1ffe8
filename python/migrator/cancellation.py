"""
Shared cancellation for a migration run.

A single MigrationContext is created per run and handed to every pipeline
and every registry call. The CancellationWatcher is its only cancellation
source in normal operation: it turns SIGINT/SIGTERM into one cancel().
"""

import signal
import threading
from typing import Callable, Dict, Iterable, Optional

from migrator.error_utils import OperationCancelledError
from migrator.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class MigrationContext:
    """Single-fire cancellation token shared by all pipelines.

    Once cancelled it stays cancelled. Callbacks registered with on_cancel()
    run exactly once, on the thread that cancels (or immediately if the
    context is already cancelled).
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Cancel the context. Returns True only for the call that actually cancelled it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.debug(f"Cancellation callback raised: {e}")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self, operation: str, image_ref: str) -> None:
        if self._event.is_set():
            raise OperationCancelledError(operation, image_ref)

    def on_cancel(self, callback: Callable[[], None]) -> Optional[int]:
        """Register a callback for cancellation.

        Returns a handle for remove_callback(), or None if the context was
        already cancelled. In that case the callback has already run,
        synchronously on the caller's thread, and exceptions it raises
        propagate to the caller. Otherwise it later runs on the thread that
        calls cancel(), outside the lock.
        """
        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback
                return handle
        callback()
        return None

    def remove_callback(self, handle: Optional[int]) -> None:
        """Unregister a callback. A None handle (callback already run) is ignored."""
        if handle is None:
            return
        with self._lock:
            self._callbacks.pop(handle, None)


class CancellationWatcher:
    """Waits for a termination request and cancels the shared context once."""

    def __init__(self, context: MigrationContext, signals: Iterable[int] = DEFAULT_SIGNALS):
        self.context = context
        self.signals = tuple(signals)
        self.received_signal: Optional[int] = None
        self._wake = threading.Event()
        self._termination_requested = False
        self._previous_handlers: Dict[int, object] = {}
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "CancellationWatcher":
        """Install signal handlers and start the watcher thread."""
        if threading.current_thread() is threading.main_thread():
            for sig in self.signals:
                self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
        else:
            logger.warning("Cancellation watcher started off the main thread; signal handlers not installed")

        self._thread = threading.Thread(target=self._watch, name="cancellation-watcher", daemon=True)
        self._thread.start()
        return self

    def _handle_signal(self, signum, frame) -> None:
        # Runs in signal context: record and wake the watcher thread only
        if self.received_signal is None:
            self.received_signal = signum
        self.request_stop()

    def request_stop(self) -> None:
        """Ask for the migration to be cancelled. Safe to call any number of times."""
        self._termination_requested = True
        self._wake.set()

    def _watch(self) -> None:
        self._wake.wait()
        if not self._termination_requested:
            return

        if self.received_signal is not None:
            reason = signal.Signals(self.received_signal).name
        else:
            reason = "stop request"
        if self.context.cancel():
            logger.warning(f"Received {reason}, cancelling in-flight migrations")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self) -> None:
        """Restore previous signal handlers and release the watcher thread."""
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()
        self._wake.set()
        self.join()

    def __enter__(self) -> "CancellationWatcher":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
