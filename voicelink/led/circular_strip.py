"""A ring of RGB LEDs with animated effects for each device state."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from voicelink.led.led import DeviceState, Led, PeriodicTimer

logger = logging.getLogger(__name__)

DEFAULT_BRIGHTNESS = 4
HIGH_BRIGHTNESS = 16
LOW_BRIGHTNESS = 1


@dataclass(frozen=True)
class StripColor:
    """An RGB colour with 8-bit channels."""

    red: int = 0
    green: int = 0
    blue: int = 0

    def __post_init__(self) -> None:
        for channel in (self.red, self.green, self.blue):
            if not 0 <= channel <= 0xFF:
                raise ValueError(f"Colour channel out of range: {channel}")

    def halved(self) -> "StripColor":
        return StripColor(self.red // 2, self.green // 2, self.blue // 2)

    @property
    def is_off(self) -> bool:
        return self.red == 0 and self.green == 0 and self.blue == 0


def _step_towards(value: int, target: int, up: bool) -> int:
    if up:
        return value + 1 if value < target else value
    return value - 1 if value > target else value


class CircularStrip(Led):
    """Drives ``max_leds`` pixels of ``strip`` (``set_pixel``, ``refresh``, ``clear``)."""

    def __init__(self, strip: Any, max_leds: int, timer: Optional[Any] = None) -> None:
        if max_leds <= 0:
            raise ValueError(f"max_leds must be positive, got {max_leds}")
        self._strip = strip
        self.max_leds = max_leds
        self._timer = timer if timer is not None else PeriodicTimer()
        self._lock = threading.Lock()
        self._colors: List[StripColor] = [StripColor()] * max_leds
        self._callback: Optional[Callable[[], None]] = None
        self._strip.clear()

    @property
    def colors(self) -> List[StripColor]:
        return list(self._colors)

    def _show(self, colors: List[StripColor]) -> None:
        for index, color in enumerate(colors):
            self._strip.set_pixel(index, color.red, color.green, color.blue)
        self._strip.refresh()

    def _start_task(self, interval_ms: int, callback: Callable[[], None]) -> None:
        with self._lock:
            self._timer.stop()
            self._callback = callback
            self._timer.start(interval_ms, self.on_timer)

    def on_timer(self) -> None:
        """Run one step of the current effect."""
        with self._lock:
            if self._callback is not None:
                self._callback()

    def static_color(self, color: StripColor) -> None:
        with self._lock:
            self._timer.stop()
            self._colors = [color] * self.max_leds
            self._show(self._colors)

    def blink(self, color: StripColor, interval_ms: int) -> None:
        with self._lock:
            self._colors = [color] * self.max_leds
        on = True

        def step() -> None:
            nonlocal on
            if on:
                self._show(self._colors)
            else:
                self._strip.clear()
            on = not on

        self._start_task(interval_ms, step)

    def fade_out(self, interval_ms: int) -> None:
        def step() -> None:
            self._colors = [color.halved() for color in self._colors]
            for index, color in enumerate(self._colors):
                self._strip.set_pixel(index, color.red, color.green, color.blue)
            if all(color.is_off for color in self._colors):
                self._strip.clear()
                self._timer.stop()
            else:
                self._strip.refresh()

        self._start_task(interval_ms, step)

    def breathe(self, low: StripColor, high: StripColor, interval_ms: int) -> None:
        increase = True
        color = low

        def step() -> None:
            nonlocal increase, color
            target = high if increase else low
            color = StripColor(
                _step_towards(color.red, target.red, increase),
                _step_towards(color.green, target.green, increase),
                _step_towards(color.blue, target.blue, increase),
            )
            if color == target:
                increase = not increase
            self._show([color] * self.max_leds)

        self._start_task(interval_ms, step)

    def scroll(self, low: StripColor, high: StripColor, length: int, interval_ms: int) -> None:
        with self._lock:
            self._colors = [low] * self.max_leds
        offset = 0

        def step() -> None:
            nonlocal offset
            colors = [low] * self.max_leds
            for j in range(length):
                colors[(offset + j) % self.max_leds] = high
            self._colors = colors
            self._show(colors)
            offset = (offset + 1) % self.max_leds

        self._start_task(interval_ms, step)

    def on_state_changed(self, state: DeviceState, voice_detected: bool = False) -> None:
        dim_blue = StripColor(LOW_BRIGHTNESS, LOW_BRIGHTNESS, DEFAULT_BRIGHTNESS)
        green = StripColor(LOW_BRIGHTNESS, DEFAULT_BRIGHTNESS, LOW_BRIGHTNESS)
        if state is DeviceState.STARTING:
            self.scroll(StripColor(0, 0, 0), dim_blue, 3, 100)
        elif state is DeviceState.WIFI_CONFIGURING:
            self.blink(dim_blue, 500)
        elif state is DeviceState.IDLE:
            self.fade_out(50)
        elif state is DeviceState.CONNECTING:
            self.static_color(dim_blue)
        elif state is DeviceState.LISTENING:
            self.static_color(StripColor(DEFAULT_BRIGHTNESS, LOW_BRIGHTNESS, LOW_BRIGHTNESS))
        elif state is DeviceState.SPEAKING:
            self.static_color(green)
        elif state is DeviceState.UPGRADING:
            self.blink(green, 100)
        else:
            logger.error("Invalid led strip event: %s", state)