"""Concrete things: screen backlight, speaker volume and a test lamp."""

from __future__ import annotations

from typing import Any, Callable

from voicelink.iot.thing import Parameter, ParameterList, Thing, ValueType


def _as_byte(value: int) -> int:
    return int(value) & 0xFF


class Backlight(Thing):
    """Screen brightness of the device; ``display`` has ``brightness`` and ``set_backlight``."""

    def __init__(self, display: Any) -> None:
        super().__init__("Backlight", "当前 AI 机器人屏幕的亮度")
        self._display = display
        self.properties.add_number_property(
            "brightness", "当前亮度值", lambda: self._display.brightness
        )
        self.methods.add_method(
            "SetBrightness",
            "设置亮度",
            ParameterList([Parameter("brightness", "0到100之间的整数", ValueType.NUMBER, True)]),
            lambda params: self._display.set_backlight(_as_byte(params["brightness"].value)),
        )


class Speaker(Thing):
    """Speaker volume; ``codec`` has ``output_volume`` and ``set_output_volume``."""

    def __init__(self, codec: Any) -> None:
        super().__init__("Speaker", "当前 AI 机器人的扬声器")
        self._codec = codec
        self.properties.add_number_property(
            "volume", "当前音量值", lambda: self._codec.output_volume
        )
        self.methods.add_method(
            "SetVolume",
            "设置音量",
            ParameterList([Parameter("volume", "0到100之间的整数", ValueType.NUMBER, True)]),
            lambda params: self._codec.set_output_volume(_as_byte(params["volume"].value)),
        )


class Lamp(Thing):
    """A switchable lamp driven through ``set_level`` (0 or 1); starts switched off."""

    def __init__(self, set_level: Callable[[int], None]) -> None:
        super().__init__("Lamp", "一个测试用的灯")
        self._set_level = set_level
        self.power = False
        self._set_level(0)
        self.properties.add_boolean_property("power", "灯是否打开", lambda: self.power)
        self.methods.add_method("TurnOn", "打开灯", ParameterList(), lambda _: self._switch(True))
        self.methods.add_method("TurnOff", "关闭灯", ParameterList(), lambda _: self._switch(False))

    def _switch(self, on: bool) -> None:
        self.power = on
        self._set_level(1 if on else 0)