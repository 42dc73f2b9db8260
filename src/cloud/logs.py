"""Live application log subscription.

A LogStream polls a fetch function on a background thread and hands new
entries to a listener in timestamp order. The caller holds a
StreamingLogToken and cancels through it.

State machine: UNSUBSCRIBED -> SUBSCRIBED -> CANCELLED (terminal).
Entries are only delivered while SUBSCRIBED.
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol, runtime_checkable

from cloud.domain import ApplicationLog, to_nanos
from cloud.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


@runtime_checkable
class ApplicationLogListener(Protocol):
    """Receives entries from a live log stream."""

    def on_message(self, log: ApplicationLog) -> None:
        ...

    def on_complete(self) -> None:
        ...

    def on_error(self, error: Exception) -> None:
        ...


class LogStreamState(Enum):
    UNSUBSCRIBED = 'unsubscribed'
    SUBSCRIBED = 'subscribed'
    CANCELLED = 'cancelled'


class LogStream:
    """Polls for new log entries and delivers them to a listener.

    Args:
        fetch: Called with the nanosecond timestamp of the last delivered
            entry (or the subscription start) and returns entries at or after it
        listener: Receives on_message/on_complete/on_error
        poll_interval: Seconds between fetches
        since: Only entries newer than this are delivered (default: now)
        name: Thread name, for diagnostics
    """

    def __init__(
        self,
        fetch: Callable[[int], list[ApplicationLog]],
        listener: ApplicationLogListener,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        since: Optional[datetime] = None,
        name: str = 'log-stream',
    ):
        self._fetch = fetch
        self._listener = listener
        self._poll_interval = poll_interval
        self._since = since
        self._name = name
        # Re-entrant: a listener may cancel from inside on_message
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._state = LogStreamState.UNSUBSCRIBED
        self._thread: Optional[threading.Thread] = None
        self._last: Optional[int] = None
        # Entries already delivered at timestamp _last
        self._delivered_at_last = 0

    @property
    def state(self) -> LogStreamState:
        return self._state

    def start(self) -> 'StreamingLogToken':
        """Subscribe and start the polling thread. Returns the cancel token."""
        with self._lock:
            if self._state is not LogStreamState.UNSUBSCRIBED:
                raise RuntimeError(f"Log stream already {self._state.value}")
            self._last = to_nanos(self._since) if self._since else time.time_ns()
            self._state = LogStreamState.SUBSCRIBED
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
        logger.debug(f"Subscribed {self._name}")
        return StreamingLogToken(self)

    def cancel(self) -> None:
        """Stop delivery. Safe to call repeatedly and from any thread.

        Blocks while a delivery is in progress on another thread, so no
        listener call starts after this returns.
        """
        with self._lock:
            if self._state is LogStreamState.CANCELLED:
                return
            self._state = LogStreamState.CANCELLED
        self._stop.set()
        logger.debug(f"Cancelled {self._name}")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self):
        while not self._stop.is_set():
            try:
                batch = self._fetch(self._last)
            except ResourceNotFoundError:
                # Application is gone; nothing more will arrive
                self._finish(None)
                return
            except Exception as e:  # pylint: disable=broad-except
                logger.warning(f"Log stream {self._name} failed: {e}")
                self._finish(e)
                return

            for entry in self._new_entries(batch):
                if not self._deliver(entry):
                    return

            self._stop.wait(self._poll_interval)

    def _new_entries(self, batch: list[ApplicationLog]) -> list[ApplicationLog]:
        """Sort a batch and drop what was already delivered.

        The log cache returns entries at or after the requested timestamp, so
        the first `_delivered_at_last` entries at `_last` are repeats.
        """
        fresh = []
        repeats = 0
        for entry in sorted(batch):
            if self._last is not None and entry.timestamp_ns < self._last:
                continue
            if entry.timestamp_ns == self._last:
                repeats += 1
                if repeats <= self._delivered_at_last:
                    continue
            fresh.append(entry)
        return fresh

    def _deliver(self, entry: ApplicationLog) -> bool:
        """Hand one entry to the listener. Returns False once cancelled."""
        with self._lock:
            if self._state is not LogStreamState.SUBSCRIBED:
                return False
            try:
                self._listener.on_message(entry)
            except Exception as e:  # pylint: disable=broad-except
                logger.exception(f"Log listener for {self._name} raised")
                self._finish(e)
                return False

            if self._last is None or entry.timestamp_ns > self._last:
                self._last = entry.timestamp_ns
                self._delivered_at_last = 0
            self._delivered_at_last += 1
            return True

    def _finish(self, error: Optional[Exception]):
        with self._lock:
            if self._state is not LogStreamState.SUBSCRIBED:
                return
            self._state = LogStreamState.CANCELLED
            self._stop.set()
            if error is None:
                self._listener.on_complete()
            else:
                self._listener.on_error(error)


class StreamingLogToken:
    """Handle returned by stream_logs; cancel() ends the subscription."""

    def __init__(self, stream: LogStream):
        self._stream = stream

    @property
    def state(self) -> LogStreamState:
        return self._stream.state

    @property
    def cancelled(self) -> bool:
        return self._stream.state is LogStreamState.CANCELLED

    def cancel(self) -> None:
        self._stream.cancel()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the polling thread to exit."""
        self._stream.join(timeout)
