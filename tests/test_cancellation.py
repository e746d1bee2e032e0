"""Tests for etwstream.cancellation — tokens and sources."""

from __future__ import annotations

import threading

from etwstream.cancellation import CancellationToken, CancellationTokenSource


class TestCancellationTokenSource:
    """CancellationTokenSource — idempotent cancellation."""

    def test_initially_live(self) -> None:
        source = CancellationTokenSource()
        assert not source.is_cancelled
        assert not source.token.is_cancellation_requested
        assert source.token.can_be_cancelled

    def test_callbacks_run_once(self) -> None:
        source = CancellationTokenSource()
        calls: list[int] = []
        source.token.register(lambda: calls.append(1))
        source.cancel()
        source.cancel()
        assert calls == [1]
        assert source.token.is_cancellation_requested

    def test_register_after_cancel_runs_immediately(self) -> None:
        source = CancellationTokenSource()
        source.cancel()
        calls: list[int] = []
        source.token.register(lambda: calls.append(1))
        assert calls == [1]

    def test_disposed_registration_does_not_run(self) -> None:
        source = CancellationTokenSource()
        calls: list[int] = []
        registration = source.token.register(lambda: calls.append(1))
        registration.dispose()
        source.cancel()
        assert calls == []

    def test_cancel_after(self) -> None:
        source = CancellationTokenSource()
        fired = threading.Event()
        source.token.register(fired.set)
        source.cancel_after(0.02)
        assert fired.wait(2.0)
        assert source.is_cancelled

    def test_cancel_stops_pending_timer(self) -> None:
        source = CancellationTokenSource()
        calls: list[int] = []
        source.token.register(lambda: calls.append(1))
        source.cancel_after(0.05)
        source.cancel()
        assert source.token.wait(0.2)
        assert calls == [1]


class TestCancellationToken:
    """CancellationToken — observer side."""

    def test_none_never_cancels(self) -> None:
        token = CancellationToken.none()
        assert not token.can_be_cancelled
        assert not token.is_cancellation_requested
        calls: list[int] = []
        token.register(lambda: calls.append(1)).dispose()
        assert calls == []

    def test_wait_times_out(self) -> None:
        source = CancellationTokenSource()
        assert source.token.wait(0.01) is False

    def test_wait_returns_after_cancel_from_other_thread(self) -> None:
        source = CancellationTokenSource()
        threading.Timer(0.02, source.cancel).start()
        assert source.token.wait(2.0) is True
