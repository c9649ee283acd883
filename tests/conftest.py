"""Shared fixtures."""

from __future__ import annotations

import signal
import sys

import pytest

from anysignal import SignalConfig, set_config


_WATCHED = ("SIGUSR1", "SIGUSR2", "SIGURG", "SIGINT", "SIGWINCH")


@pytest.fixture(autouse=True)
def _restore_dispositions():
    """Put back whatever handlers a test left behind."""
    saved = {
        getattr(signal, name): signal.getsignal(getattr(signal, name))
        for name in _WATCHED
        if hasattr(signal, name)
    }
    yield
    for signum, handler in saved.items():
        if handler is not None:
            signal.signal(signum, handler)


@pytest.fixture(autouse=True)
def _reset_config():
    yield
    set_config(SignalConfig())


@pytest.fixture
def registry():
    """A private signal registry that must be idle again after the test."""
    if sys.platform == "win32":
        pytest.skip("POSIX signal registry")
    from anysignal.unix import SignalRegistry

    registry = SignalRegistry()
    yield registry
    assert registry.signals == frozenset()
    assert registry.channel is None
