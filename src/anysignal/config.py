"""Process-wide configuration."""

from __future__ import annotations

import threading

from pydantic import BaseModel, ConfigDict, Field


class SignalConfig(BaseModel):
    """Tuning knobs shared by the signal registry and the console router."""

    ack_timeout: float = Field(
        default=2.0,
        gt=0.0,
        title="Acknowledgment Timeout",
        examples=[0.5, 5.0],
    )
    """Seconds the console handler thread waits for listeners to acknowledge."""

    chain_previous: bool = Field(default=True, title="Chain Previous Handler")
    """Call a previously installed Python-level handler after recording a signal."""

    drain_chunk_size: int = Field(
        default=512,
        gt=0,
        title="Drain Chunk Size",
        examples=[64, 4096],
    )
    """Bytes read per call while draining the notification channel."""

    model_config = ConfigDict(use_attribute_docstrings=True, extra="forbid", frozen=True)


_config = SignalConfig()
_config_lock = threading.Lock()


def get_config() -> SignalConfig:
    """Return the active process-wide configuration."""
    return _config


def set_config(config: SignalConfig | None = None, **overrides: object) -> SignalConfig:
    """Replace the process-wide configuration.

    Backends created without an explicit config read it at every registration
    and every console event, so the change applies from then on.

    Args:
        config: New configuration; defaults to the current one.
        **overrides: Field values applied on top of ``config``.

    Returns:
        The configuration now in effect.
    """
    global _config
    with _config_lock:
        base = config or _config
        new = base.model_copy(update=overrides) if overrides else base
        _config = SignalConfig.model_validate(new.model_dump())
    return _config

