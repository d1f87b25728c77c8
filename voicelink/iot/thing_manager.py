"""Registry of the things a device exposes, serialised together for the server."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from voicelink.iot.thing import Thing

Schedule = Callable[[Callable[[], None]], None]


class ThingManager:
    """Holds things and routes incoming commands to them by name."""

    def __init__(self, schedule: Optional[Schedule] = None) -> None:
        self._schedule = schedule
        self._things: List[Thing] = []

    def add_thing(self, thing: Thing) -> None:
        self._things.append(thing)

    def get_descriptors_json(self) -> str:
        return "[" + ",".join(thing.get_descriptor_json() for thing in self._things) + "]"

    def get_states_json(self) -> str:
        return "[" + ",".join(thing.get_state_json() for thing in self._things) + "]"

    def invoke(self, command: Dict[str, Any]) -> None:
        """Pass the command to the first thing whose name matches; ignore it otherwise."""
        name = command.get("name")
        for thing in self._things:
            if thing.name == name:
                thing.invoke(command, self._schedule)
                return