# voicelink

Building blocks for the client side of a voice assistant device, written in
plain Python. The package is a library with no command of its own. Every part
takes its transports, storage and hardware as objects you pass in, so each
part can be used and tested on its own.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## What is inside

### IoT things: `voicelink.iot`

`voicelink.iot.thing` describes a controllable device as a `Thing`. A thing has
a `properties` list (`PropertyList`) and a `methods` list (`MethodList`).

- A `Property` has a `ValueType` (boolean, number or string) and a getter.
- A `Method` has a `ParameterList` of `Parameter` entries and a callback.

A thing offers these calls:

- `get_descriptor_json()` returns a JSON object that describes the thing's
  properties and methods.
- `get_state_json()` returns the current property values.
- `invoke(command, schedule)` takes a parsed command, a dict with `method` and
  `parameters`. It fills in the method's parameters and hands the call to
  `schedule`. With no `schedule`, the call runs at once. An unknown method
  raises `KeyError`. A missing required parameter raises `ValueError`.

`register_thing` and `create_thing` keep a registry of thing factories by type
name. `create_thing` raises `KeyError` for a type that has not been registered.

`voicelink.iot.thing_manager.ThingManager` holds a list of things.

- `get_descriptors_json()` and `get_states_json()` return JSON arrays covering
  all the things.
- `invoke(command)` passes the command to the thing whose name matches
  `command["name"]`. It ignores a command that names no thing it holds.

`voicelink.iot.things` provides three things:

- `Backlight(display)`: a `brightness` property and a `SetBrightness` method.
  The display needs a `brightness` attribute and a `set_backlight(value)`
  method.
- `Speaker(codec)`: a `volume` property and a `SetVolume` method. The codec
  needs an `output_volume` attribute and a `set_output_volume(value)` method.
- `Lamp(set_level)`: a `power` property and `TurnOn` / `TurnOff` methods. They
  call `set_level(1)` or `set_level(0)`, and the lamp starts switched off.

```python
from voicelink.iot.thing_manager import ThingManager
from voicelink.iot.things import Lamp

manager = ThingManager(schedule=lambda call: call())
manager.add_thing(Lamp(set_level=lambda level: print("lamp level", level)))
print(manager.get_descriptors_json())
manager.invoke({"name": "Lamp", "method": "TurnOn", "parameters": {}})
print(manager.get_states_json())
```

### Settings: `voicelink.settings`

A `SettingsStore` holds key/value data grouped by namespace.

- With a path, it keeps the data in a JSON file, which it replaces atomically
  on every write.
- Without a path, it keeps the data in memory.

A `Settings` object is a view of one namespace and is opened read-only or
read-write. Its methods are `get_string`, `set_string`, `get_int`, `set_int`
(32-bit values only), `erase_key` and `erase_all`. On a read-only view, the
write methods log a warning and change nothing. Changes reach the store on
`commit()`, on `close()`, or when a `with` block ends.

```python
from voicelink.settings import Settings, SettingsStore

store = SettingsStore("settings.json")
with Settings(store, "mqtt", read_write=True) as settings:
    settings.set_string("endpoint", "mqtt.example.com")
```

### Firmware updates: `voicelink.ota`

`Ota(current_version, http_client, settings_store)` checks for newer firmware
and downloads it. Without an `http_client`, requests go through
`urllib.request`.

`check_version()` queries the URL set with `set_check_version_url`. It sends
the headers set with `set_header`. It sends a POST if `set_post_data` was
given a body, and a GET otherwise. It returns `True` when the server offers a
newer version. From the server's reply it records:

- `firmware_version` and `firmware_url`
- `activation_message` and `activation_code`, when the reply has them
- any MQTT string settings, which are saved in the `mqtt` namespace of the
  settings store

`start_upgrade(sink, callback)` streams the offered image into a sink. The sink
is an object with `write(data)`, `finish()` and `abort()`. The callback gets
`(percent, bytes_per_second)` about once a second. The download stops with an
error if the image's embedded version equals the current version. On success
the method returns the new version.

The module also provides these helpers:

- `parse_version` and `is_new_version_available` compare dotted versions.
- `read_image_version` reads the version string from the start of a firmware
  image.

Failures raise `OtaError`.

### Protocols: `voicelink.protocols`

`voicelink.protocols.protocol.Protocol` is the shared base class.

It builds the JSON control messages:

- `send_start_listening(ListeningMode)`
- `send_stop_listening()`
- `send_wake_word_detected(word)`
- `send_abort_speaking(AbortReason)`
- `send_iot_descriptors(json)`
- `send_iot_states(json)`

It also holds the callbacks:

- `on_incoming_json`
- `on_incoming_audio`
- `on_audio_channel_opened`
- `on_audio_channel_closed`
- `on_network_error`

`MqttProtocol(settings, mqtt_factory, udp_factory, schedule, hello_timeout)`
sends control messages over MQTT.

- It reads the endpoint, client id, user name, password and publish topic from
  the `mqtt` namespace of a `SettingsStore`.
- `open_audio_channel()` sends a hello and waits for the server's hello. It
  then opens a UDP channel to the server and port that the hello names.
- Each audio packet is protected with AES-CTR. The key and nonce come from the
  server's hello, and `decode_hex_string` converts them from hex to bytes.
- Incoming MQTT messages go to `handle_message`, and incoming UDP packets go to
  `handle_udp_packet`.

`WebsocketProtocol(url, access_token, device_id, client_uuid,
websocket_factory, hello_timeout)` carries both the JSON messages and the
binary audio over one WebSocket connection. Incoming frames go to
`handle_data`.

### LEDs: `voicelink.led`

`voicelink.led.led` provides the shared pieces:

- `DeviceState` lists the states of the device.
- `Led` is the base class for an indicator that reacts to
  `on_state_changed(state, voice_detected)`, and `NoLed` does nothing.
- `PeriodicTimer` runs a callback on a background thread and drives the
  animations.

Two indicators build on it:

- `SingleLed(strip, timer)` drives pixel 0 of a strip object that has
  `set_pixel`, `refresh` and `clear`. It shows solid colours and blinks.
- `CircularStrip(strip, max_leds, timer)` drives a ring of pixels using
  `StripColor` values. Its effects are `static_color`, `blink`, `fade_out`,
  `breathe` and `scroll`.

## What the package does not do

- It has no application that ties the parts into a running assistant, and no
  command to start one.
- It includes no MQTT, UDP or WebSocket client. The protocols use whatever
  objects the factories you pass in return.
- It talks to no hardware. Displays, codecs, LED strips and output pins are
  objects you supply.
- It does not flash firmware or restart a device. `Ota` only delivers the image
  to your sink.