"""Tests for the reference-counted POSIX signal registry."""

from __future__ import annotations

import signal
import sys
import threading

import pytest

from anysignal import InvalidSignal, RegistrationFailed, RegistryCorrupted, set_config


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX backend")

if sys.platform != "win32":
    from anysignal.unix import SignalRegistry


class RecordingSink:
    def __init__(self) -> None:
        self.delivered: list[tuple[signal.Signals, int]] = []

    def deliver(self, signum: signal.Signals, count: int) -> None:
        self.delivered.append((signum, count))


def test_first_register_installs_hook(registry: SignalRegistry):
    """Test the first registration installs a hook and opens the channel."""
    token = registry.register(signal.SIGUSR1)

    handle = registry.handle(signal.SIGUSR1)
    assert handle is not None
    assert signal.getsignal(signal.SIGUSR1) is handle
    assert registry.refcount(signal.SIGUSR1) == 1
    assert registry.channel is not None
    assert registry.fileno() >= 0

    token.release()


def test_second_register_shares_hook(registry: SignalRegistry):
    """Test further registrations bump the refcount and reuse the handle."""
    first = registry.register(signal.SIGUSR1)
    second = registry.register(signal.SIGUSR1)

    assert first.handle is second.handle
    assert registry.refcount(signal.SIGUSR1) == 2  # noqa: PLR2004

    first.release()
    assert registry.refcount(signal.SIGUSR1) == 1
    assert signal.getsignal(signal.SIGUSR1) is second.handle

    second.release()


def test_last_release_restores_previous(registry: SignalRegistry):
    """Test the previous disposition comes back after the last release."""
    signal.signal(signal.SIGUSR2, signal.SIG_IGN)
    token = registry.register(signal.SIGUSR2)
    handle = token.handle

    token.release()

    assert signal.getsignal(signal.SIGUSR2) == signal.SIG_IGN
    assert registry.handle(signal.SIGUSR2) is None
    assert registry.refcount(signal.SIGUSR2) == 0
    assert not handle.active
    assert registry.channel is None
    assert registry.fileno() == -1


def test_reregister_creates_fresh_handle(registry: SignalRegistry):
    """Test a registration after full teardown installs a new hook."""
    token = registry.register(signal.SIGUSR1)
    old_handle = token.handle
    token.release()

    token = registry.register(signal.SIGUSR1)

    assert token.handle is not old_handle
    assert token.handle.active
    assert signal.getsignal(signal.SIGUSR1) is token.handle
    token.release()


def test_release_twice_is_noop(registry: SignalRegistry):
    """Test releasing the same token again does not underflow the count."""
    keep = registry.register(signal.SIGUSR1)
    token = registry.register(signal.SIGUSR1)

    token.release()
    token.release()

    assert registry.refcount(signal.SIGUSR1) == 1
    keep.release()


def test_foreign_token_is_corruption(registry: SignalRegistry):
    """Test releasing a token the handle does not know about aborts loudly."""
    token = registry.register(signal.SIGUSR1)
    token.handle.tokens.discard(token)

    with pytest.raises(RegistryCorrupted):
        token.release()

    token.handle.tokens.add(token)
    token.release()


@pytest.mark.parametrize("value", [0, -1, 10_000, "SIGUSR1", 1.5, True])
def test_invalid_signal_values(registry: SignalRegistry, value: object):
    """Test values that are not signal numbers are rejected."""
    with pytest.raises(InvalidSignal):
        registry.register(value)  # type: ignore[arg-type]
    assert registry.channel is None


@pytest.mark.parametrize("name", ["SIGKILL", "SIGSTOP"])
def test_uncatchable_signals_rejected(registry: SignalRegistry, name: str):
    """Test SIGKILL and SIGSTOP cannot be listened for."""
    with pytest.raises(InvalidSignal, match="cannot be listened for"):
        registry.register(getattr(signal, name))


def test_install_outside_main_thread_fails(registry: SignalRegistry):
    """Test the OS refusing the hook surfaces as RegistrationFailed."""
    errors: list[BaseException] = []

    def register() -> None:
        try:
            registry.register(signal.SIGUSR1)
        except RegistrationFailed as exc:
            errors.append(exc)

    thread = threading.Thread(target=register)
    thread.start()
    thread.join()

    assert len(errors) == 1
    assert registry.handle(signal.SIGUSR1) is None
    assert registry.channel is None


def test_existing_hook_can_be_shared_from_any_thread(registry: SignalRegistry):
    """Test registering an installed signal needs no OS call."""
    main = registry.register(signal.SIGUSR1)
    tokens = []
    thread = threading.Thread(target=lambda: tokens.append(registry.register(signal.SIGUSR1)))
    thread.start()
    thread.join()

    assert registry.refcount(signal.SIGUSR1) == 2  # noqa: PLR2004
    tokens[0].release()
    main.release()


def test_occurrences_counted_at_dispatch(registry: SignalRegistry):
    """Test deliveries wait in the channel until dispatch counts them."""
    sink = RecordingSink()
    token = registry.register(signal.SIGUSR1, sink)

    signal.raise_signal(signal.SIGUSR1)
    signal.raise_signal(signal.SIGUSR1)

    assert sink.delivered == []

    registry.dispatch()

    assert sink.delivered == [(signal.SIGUSR1, 2)]
    assert registry.counters.pending(signal.SIGUSR1) == 0
    token.release()


def test_dispatch_broadcasts_to_every_sink(registry: SignalRegistry):
    """Test each registered sink gets the full count rather than a share."""
    first, second = RecordingSink(), RecordingSink()
    tokens = [
        registry.register(signal.SIGUSR1, first),
        registry.register(signal.SIGUSR1, second),
    ]

    signal.raise_signal(signal.SIGUSR1)
    registry.dispatch()

    assert first.delivered == [(signal.SIGUSR1, 1)]
    assert second.delivered == [(signal.SIGUSR1, 1)]
    for token in tokens:
        token.release()


def test_dispatch_without_listener_discards(registry: SignalRegistry):
    """Test counts for a signal nobody listens to anymore are dropped."""
    calls: list[int] = []
    signal.signal(signal.SIGUSR1, lambda signum, frame: calls.append(signum))
    sink = RecordingSink()
    keep = registry.register(signal.SIGUSR2, sink)
    gone = registry.register(signal.SIGUSR1, sink)

    gone.release()
    signal.raise_signal(signal.SIGUSR1)
    registry.dispatch()

    assert calls == [signal.SIGUSR1]
    assert sink.delivered == []
    keep.release()


def test_previous_python_handler_is_chained(registry: SignalRegistry):
    """Test a handler installed before the registry still runs."""
    calls: list[int] = []
    signal.signal(signal.SIGUSR1, lambda signum, frame: calls.append(signum))
    sink = RecordingSink()

    token = registry.register(signal.SIGUSR1, sink)
    signal.raise_signal(signal.SIGUSR1)
    registry.dispatch()

    assert calls == [signal.SIGUSR1]
    assert sink.delivered == [(signal.SIGUSR1, 1)]
    token.release()
    assert signal.getsignal(signal.SIGUSR1) is not token.handle


def test_chaining_can_be_disabled(registry: SignalRegistry):
    """Test chain_previous=False keeps the previous handler silent."""
    calls: list[int] = []
    signal.signal(signal.SIGUSR1, lambda signum, frame: calls.append(signum))
    set_config(chain_previous=False)

    token = registry.register(signal.SIGUSR1)
    signal.raise_signal(signal.SIGUSR1)

    assert calls == []
    token.release()


def test_default_int_handler_not_chained(registry: SignalRegistry):
    """Test listening for SIGINT suppresses KeyboardInterrupt."""
    signal.signal(signal.SIGINT, signal.default_int_handler)
    sink = RecordingSink()
    token = registry.register(signal.SIGINT, sink)

    signal.raise_signal(signal.SIGINT)
    registry.dispatch()

    assert sink.delivered == [(signal.SIGINT, 1)]
    token.release()
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler


def test_failed_restore_is_finished_by_next_owner(registry: SignalRegistry):
    """Test a handle left installed by a failed restore does not hide the original handler."""
    calls: list[int] = []

    def original(signum: int, frame: object) -> None:
        calls.append(signum)

    signal.signal(signal.SIGUSR1, original)
    token = registry.register(signal.SIGUSR1)
    stale = token.handle
    errors: list[BaseException] = []

    def release() -> None:
        try:
            token.release()
        except RegistrationFailed as exc:
            errors.append(exc)

    thread = threading.Thread(target=release)
    thread.start()
    thread.join()

    assert len(errors) == 1
    assert registry.handle(signal.SIGUSR1) is None
    assert signal.getsignal(signal.SIGUSR1) is stale

    token = registry.register(signal.SIGUSR1)
    assert token.handle.previous is original
    assert token.handle.chain is original

    signal.raise_signal(signal.SIGUSR1)
    assert calls == [signal.SIGUSR1]

    token.release()
    assert signal.getsignal(signal.SIGUSR1) is original
    assert registry.channel is None
