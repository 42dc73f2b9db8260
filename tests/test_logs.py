#!/usr/bin/env python3
"""Tests for cloud/logs.py - live log subscription.

Tests verify:
1. Entries are delivered in timestamp order, once each
2. cancel() is idempotent and no delivery starts after it returns
3. Stream end on missing application (on_complete) and on errors (on_error)
"""

import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from cloud import ApplicationLog, LogStreamState, RemoteApiError, ResourceNotFoundError
from cloud.domain import to_nanos
from cloud.logs import LogStream

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
WAIT = 5


def _log(seconds: float, message: str, source_id: str = '0', offset_ns: int = 0) -> ApplicationLog:
    return ApplicationLog(
        timestamp_ns=to_nanos(T0 + timedelta(seconds=seconds)) + offset_ns,
        app_id='app-guid',
        message=message,
        source_name='APP/PROC/WEB',
        source_id=source_id,
    )


class RecordingListener:
    """Collects stream callbacks; signals after `expect` messages or stream end."""

    def __init__(self, expect: int = 1):
        self.messages = []
        self.completed = False
        self.error = None
        self.expect = expect
        self.got_messages = threading.Event()
        self.finished = threading.Event()

    def on_message(self, log):
        self.messages.append(log)
        if len(self.messages) >= self.expect:
            self.got_messages.set()

    def on_complete(self):
        self.completed = True
        self.finished.set()

    def on_error(self, error):
        self.error = error
        self.finished.set()


def _stream(fetch, listener, since=T0):
    return LogStream(fetch=fetch, listener=listener, poll_interval=0.01, since=since, name='test-stream')


class TestDelivery:
    """Test ordering and de-duplication."""

    def test_batch_delivered_in_timestamp_order(self):
        batches = iter([[_log(3, 'c'), _log(1, 'a'), _log(2, 'b')]])
        listener = RecordingListener(expect=3)
        token = _stream(lambda since: next(batches, []), listener).start()

        assert listener.got_messages.wait(WAIT)
        token.cancel()
        assert [m.message for m in listener.messages] == ['a', 'b', 'c']

    def test_repeated_entries_delivered_once(self):
        entries = [_log(1, 'a'), _log(1, 'b', source_id='1'), _log(2, 'c')]
        polls = threading.Event()
        calls = []

        def fetch(since):
            calls.append(since)
            if len(calls) >= 4:
                polls.set()
            # Log cache returns entries at or after start_time, so the last one repeats
            return [e for e in entries if e.timestamp_ns >= since]

        listener = RecordingListener(expect=3)
        token = _stream(fetch, listener).start()
        assert polls.wait(WAIT)
        token.cancel()

        assert [m.message for m in listener.messages] == ['a', 'b', 'c']

    def test_sub_microsecond_order(self):
        batches = iter([[_log(1, 'second', offset_ns=300), _log(1, 'first', offset_ns=100)]])
        listener = RecordingListener(expect=2)
        token = _stream(lambda since: next(batches, []), listener).start()

        assert listener.got_messages.wait(WAIT)
        token.cancel()
        assert [m.message for m in listener.messages] == ['first', 'second']

    def test_identical_lines_at_same_timestamp_all_delivered(self):
        entries = [_log(1, 'retrying'), _log(1, 'retrying'), _log(1, 'retrying')]
        polls = threading.Event()
        calls = []

        def fetch(since):
            calls.append(since)
            if len(calls) >= 4:
                polls.set()
            return [e for e in entries if e.timestamp_ns >= since]

        listener = RecordingListener(expect=3)
        token = _stream(fetch, listener).start()
        assert polls.wait(WAIT)
        token.cancel()

        assert [m.message for m in listener.messages] == ['retrying'] * 3

    def test_new_line_at_last_timestamp_delivered(self):
        batches = iter([
            [_log(1, 'a')],
            [_log(1, 'a'), _log(1, 'b')],
        ])
        listener = RecordingListener(expect=2)
        token = _stream(lambda since: next(batches, []), listener).start()

        assert listener.got_messages.wait(WAIT)
        token.cancel()
        assert [m.message for m in listener.messages] == ['a', 'b']

    def test_entries_before_subscription_skipped(self):
        batches = iter([[_log(-5, 'old'), _log(1, 'new')]])
        listener = RecordingListener(expect=1)
        token = _stream(lambda since: next(batches, []), listener).start()

        assert listener.got_messages.wait(WAIT)
        token.cancel()
        assert [m.message for m in listener.messages] == ['new']

    def test_fetch_receives_last_delivered_timestamp(self):
        seen = []
        batches = iter([[_log(1, 'a'), _log(4, 'b')]])

        def fetch(since):
            seen.append(since)
            return next(batches, [])

        listener = RecordingListener(expect=2)
        token = _stream(fetch, listener).start()
        assert listener.got_messages.wait(WAIT)
        deadline = time.time() + WAIT
        while len(seen) < 2 and time.time() < deadline:
            time.sleep(0.01)
        token.cancel()

        assert seen[0] == to_nanos(T0)
        assert seen[1] == to_nanos(T0 + timedelta(seconds=4))


class TestCancellation:
    """Test the UNSUBSCRIBED -> SUBSCRIBED -> CANCELLED state machine."""

    def test_cancel_twice_is_not_an_error(self):
        stream = _stream(lambda since: [], RecordingListener())
        token = stream.start()
        assert token.state == LogStreamState.SUBSCRIBED

        token.cancel()
        token.cancel()

        assert token.cancelled
        assert token.state == LogStreamState.CANCELLED

    def test_no_delivery_after_cancel_returns(self):
        counter = iter(range(1, 1_000_000))

        def fetch(since):
            n = next(counter)
            return [_log(n, f'line {n}')]

        listener = RecordingListener(expect=1)
        token = _stream(fetch, listener).start()
        assert listener.got_messages.wait(WAIT)

        token.cancel()
        delivered = len(listener.messages)
        time.sleep(0.1)
        token.join(WAIT)

        assert len(listener.messages) == delivered

    def test_cancel_from_listener(self):
        holder = {}

        class CancellingListener(RecordingListener):
            def on_message(self, log):
                super().on_message(log)
                holder['token'].cancel()

        listener = CancellingListener()
        batches = iter([[_log(1, 'a'), _log(2, 'b'), _log(3, 'c')]])
        stream = _stream(lambda since: next(batches, []), listener)
        holder['token'] = stream.start()

        assert listener.got_messages.wait(WAIT)
        holder['token'].join(WAIT)

        assert [m.message for m in listener.messages] == ['a']
        assert holder['token'].cancelled

    def test_start_twice_rejected(self):
        stream = _stream(lambda since: [], RecordingListener())
        token = stream.start()
        try:
            with pytest.raises(RuntimeError):
                stream.start()
        finally:
            token.cancel()

    def test_no_end_callback_after_cancel(self):
        listener = RecordingListener()
        token = _stream(lambda since: [], listener).start()
        token.cancel()
        token.join(WAIT)

        assert not listener.completed
        assert listener.error is None


class TestStreamEnd:
    """Test how fetch failures end the stream."""

    def test_missing_application_completes(self):
        def fetch(since):
            raise ResourceNotFoundError("Application 'web' not found")

        listener = RecordingListener()
        token = _stream(fetch, listener).start()

        assert listener.finished.wait(WAIT)
        assert listener.completed
        assert listener.error is None
        assert token.cancelled

    def test_remote_error_reported(self):
        error = RemoteApiError(502, 'Bad Gateway')

        def fetch(since):
            raise error

        listener = RecordingListener()
        token = _stream(fetch, listener).start()

        assert listener.finished.wait(WAIT)
        assert listener.error is error
        assert not listener.completed
        assert token.state == LogStreamState.CANCELLED

    def test_unexpected_fetch_failure_reported(self):
        error = ValueError('Incorrect padding')

        def fetch(since):
            raise error

        listener = RecordingListener()
        token = _stream(fetch, listener).start()

        assert listener.finished.wait(WAIT)
        assert listener.error is error
        assert token.state == LogStreamState.CANCELLED

    def test_listener_failure_ends_stream(self):
        class FailingListener(RecordingListener):
            def on_message(self, log):
                raise RuntimeError('listener broke')

        listener = FailingListener()
        batches = iter([[_log(1, 'a'), _log(2, 'b')]])
        token = _stream(lambda since: next(batches, []), listener).start()

        assert listener.finished.wait(WAIT)
        assert isinstance(listener.error, RuntimeError)
        assert token.cancelled
