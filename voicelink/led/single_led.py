"""A single RGB status LED that blinks or glows according to the device state."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from voicelink.led.led import DeviceState, Led, PeriodicTimer

logger = logging.getLogger(__name__)

DEFAULT_BRIGHTNESS = 4
HIGH_BRIGHTNESS = 16
LOW_BRIGHTNESS = 2
BLINK_INFINITE = -1


class SingleLed(Led):
    """Drives pixel 0 of ``strip``, which offers ``set_pixel``, ``refresh`` and ``clear``."""

    def __init__(self, strip: Any, timer: Optional[Any] = None) -> None:
        self._strip = strip
        self._timer = timer if timer is not None else PeriodicTimer()
        self._lock = threading.Lock()
        self._color = (0, 0, 0)
        self._blink_counter = 0
        self.blink_interval_ms = 0
        self._strip.clear()

    @property
    def color(self) -> tuple:
        return self._color

    def set_color(self, r: int, g: int, b: int) -> None:
        self._color = (r & 0xFF, g & 0xFF, b & 0xFF)

    def turn_on(self) -> None:
        with self._lock:
            self._timer.stop()
            self._strip.set_pixel(0, *self._color)
            self._strip.refresh()

    def turn_off(self) -> None:
        with self._lock:
            self._timer.stop()
            self._strip.clear()

    def blink_once(self) -> None:
        self.blink(1, 100)

    def blink(self, times: int, interval_ms: int) -> None:
        self._start_blink_task(times, interval_ms)

    def start_continuous_blink(self, interval_ms: int) -> None:
        self._start_blink_task(BLINK_INFINITE, interval_ms)

    def _start_blink_task(self, times: int, interval_ms: int) -> None:
        with self._lock:
            self._timer.stop()
            self._blink_counter = times * 2
            self.blink_interval_ms = interval_ms
            self._timer.start(interval_ms, self.on_blink_timer)

    def on_blink_timer(self) -> None:
        """Advance the blink: odd counts light the LED, even counts darken it."""
        with self._lock:
            self._blink_counter -= 1
            if self._blink_counter & 1:
                self._strip.set_pixel(0, *self._color)
                self._strip.refresh()
            else:
                self._strip.clear()
                if self._blink_counter == 0:
                    self._timer.stop()

    def on_state_changed(self, state: DeviceState, voice_detected: bool = False) -> None:
        if state is DeviceState.STARTING:
            self.set_color(0, 0, DEFAULT_BRIGHTNESS)
            self.start_continuous_blink(100)
        elif state is DeviceState.WIFI_CONFIGURING:
            self.set_color(0, 0, DEFAULT_BRIGHTNESS)
            self.start_continuous_blink(500)
        elif state is DeviceState.IDLE:
            self.turn_off()
        elif state is DeviceState.CONNECTING:
            self.set_color(0, 0, DEFAULT_BRIGHTNESS)
            self.turn_on()
        elif state is DeviceState.LISTENING:
            level = HIGH_BRIGHTNESS if voice_detected else LOW_BRIGHTNESS
            self.set_color(level, 0, 0)
            self.turn_on()
        elif state is DeviceState.SPEAKING:
            self.set_color(0, DEFAULT_BRIGHTNESS, 0)
            self.turn_on()
        elif state is DeviceState.UPGRADING:
            self.set_color(0, DEFAULT_BRIGHTNESS, 0)
            self.start_continuous_blink(100)
        else:
            logger.error("Invalid led strip event: %s", state)