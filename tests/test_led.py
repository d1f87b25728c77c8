import threading
import time

import pytest

from voicelink.led.led import DeviceState, Led, NoLed, PeriodicTimer


def test_led_is_abstract():
    with pytest.raises(TypeError):
        Led()

    class Incomplete(Led):
        pass

    with pytest.raises(TypeError):
        Incomplete()


def test_no_led_ignores_state_changes():
    led = NoLed()
    assert led.on_state_changed(DeviceState.LISTENING, True) is None
    assert isinstance(led, Led)


def test_timer_rejects_non_positive_interval():
    timer = PeriodicTimer()
    with pytest.raises(ValueError):
        timer.start(0, lambda: None)
    assert not timer.running


def test_timer_calls_until_stopped_from_callback():
    timer = PeriodicTimer()
    calls = []
    done = threading.Event()

    def tick():
        calls.append(1)
        if len(calls) == 3:
            timer.stop()
            done.set()

    timer.start(5, tick)
    assert timer.running
    assert done.wait(2.0)
    time.sleep(0.05)
    assert len(calls) == 3
    assert not timer.running


def test_restart_replaces_callback():
    timer = PeriodicTimer()
    first = []
    second = threading.Event()
    timer.start(1000, lambda: first.append(1))
    timer.start(5, second.set)
    try:
        assert second.wait(2.0)
    finally:
        timer.stop()
    assert first == []
    assert not timer.running