"""
Wallet lifecycle notifications.

Subscribers register callbacks per event type (or for all events) and are
called synchronously, in registration order, when the wallet emits.
A failing subscriber is logged and does not stop the others.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    INITIALIZED = "initialized"
    PROOF_COMPUTED = "proof_computed"
    PROOF_FAILED = "proof_failed"
    TRANSACTION_INITIATED = "transaction_initiated"
    TRANSACTION_PENDING = "transaction_pending"
    TRANSACTION_CONFIRMED = "transaction_confirmed"
    TRANSACTION_FAILED = "transaction_failed"
    LOGGED_OUT = "logged_out"


@dataclass
class WalletEvent:
    """A single emitted notification."""

    event_type: EventType
    timestamp: float
    detail: Any = None

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "detail": _plain(self.detail),
        }


def _plain(detail: Any) -> Any:
    if hasattr(detail, "to_dict"):
        return detail.to_dict()
    if isinstance(detail, BaseException):
        return f"{type(detail).__name__}: {detail}"
    if isinstance(detail, dict):
        return {k: _plain(v) for k, v in detail.items()}
    return detail


Listener = Callable[[WalletEvent], None]


class EventEmitter:
    """Synchronous pub/sub for wallet events with a bounded history."""

    def __init__(self, history_size: int = 100):
        self._listeners: dict[Optional[EventType], list[Listener]] = {}
        self._history: deque[WalletEvent] = deque(maxlen=history_size)

    def on(self, event_type: Optional[EventType], listener: Listener) -> None:
        """Subscribe to one event type, or to every event with ``None``."""
        self._listeners.setdefault(event_type, []).append(listener)

    def off(self, event_type: Optional[EventType], listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event_type: EventType, detail: Any = None) -> WalletEvent:
        event = WalletEvent(event_type=event_type, timestamp=time.time(), detail=detail)
        self._history.append(event)
        for listener in [*self._listeners.get(event_type, []), *self._listeners.get(None, [])]:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener for %s failed", event_type.value)
        return event

    def history(self, event_type: Optional[EventType] = None) -> list[WalletEvent]:
        return [e for e in self._history if event_type is None or e.event_type == event_type]
