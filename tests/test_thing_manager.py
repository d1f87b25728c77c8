import json

from voicelink.iot.thing import Parameter, ParameterList, Thing, ValueType
from voicelink.iot.thing_manager import ThingManager


def _thing(name, calls):
    thing = Thing(name, f"{name} desc")
    thing.properties.add_boolean_property("power", "p", lambda: name == "A")
    thing.methods.add_method(
        "Set",
        "set",
        ParameterList([Parameter("value", "", ValueType.STRING)]),
        lambda params: calls.append((name, params["value"].value)),
    )
    return thing


def test_empty_manager_serialises_to_empty_arrays():
    manager = ThingManager()
    assert manager.get_descriptors_json() == "[]"
    assert manager.get_states_json() == "[]"


def test_descriptors_and_states_in_insertion_order():
    manager = ThingManager()
    manager.add_thing(_thing("A", []))
    manager.add_thing(_thing("B", []))
    descriptors = json.loads(manager.get_descriptors_json())
    assert [d["name"] for d in descriptors] == ["A", "B"]
    states = json.loads(manager.get_states_json())
    assert states == [
        {"name": "A", "state": {"power": True}},
        {"name": "B", "state": {"power": False}},
    ]


def test_invoke_routes_by_name_through_scheduler():
    calls = []
    scheduled = []
    manager = ThingManager(scheduled.append)
    manager.add_thing(_thing("A", calls))
    manager.add_thing(_thing("B", calls))
    manager.invoke({"name": "B", "method": "Set", "parameters": {"value": "hello"}})
    assert len(scheduled) == 1
    scheduled[0]()
    assert calls == [("B", "hello")]


def test_invoke_unknown_thing_is_ignored():
    calls = []
    manager = ThingManager()
    manager.add_thing(_thing("A", calls))
    manager.invoke({"name": "Z", "method": "Set", "parameters": {"value": "x"}})
    assert calls == []