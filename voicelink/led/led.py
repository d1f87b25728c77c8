"""Status light interface, device states it reflects, and a periodic timer driving effects."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Callable, Optional


class DeviceState(Enum):
    """States of the device that a status light shows."""

    UNKNOWN = auto()
    STARTING = auto()
    WIFI_CONFIGURING = auto()
    IDLE = auto()
    CONNECTING = auto()
    LISTENING = auto()
    SPEAKING = auto()
    UPGRADING = auto()


class PeriodicTimer:
    """Calls a callback every ``interval_ms`` milliseconds on a background thread.

    Starting again replaces the running callback. ``stop`` may be called from
    within the callback and does not wait for a callback in progress.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._stop_event is not None

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        if interval_ms <= 0:
            raise ValueError(f"Interval must be positive, got {interval_ms}")
        self.stop()
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(interval_ms / 1000.0, callback, stop_event),
            name="PeriodicTimer",
            daemon=True,
        )
        with self._lock:
            self._stop_event = stop_event
        thread.start()

    def stop(self) -> None:
        with self._lock:
            stop_event, self._stop_event = self._stop_event, None
        if stop_event is not None:
            stop_event.set()

    @staticmethod
    def _run(interval: float, callback: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.wait(interval):
            callback()


class Led(ABC):
    """A status light that follows the device state."""

    @abstractmethod
    def on_state_changed(self, state: DeviceState, voice_detected: bool = False) -> None:
        """Show ``state``; ``voice_detected`` refines the listening state."""


class NoLed(Led):
    """Stands in for a board without a status light."""

    def on_state_changed(self, state: DeviceState, voice_detected: bool = False) -> None:
        return None