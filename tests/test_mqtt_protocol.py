import json

from voicelink.protocols.mqtt_protocol import MqttProtocol, decode_hex_string
from voicelink.settings import SettingsStore

KEY_HEX = bytes(range(16)).hex()
NONCE_HEX = "01" + "00" * 15


def server_hello(session_id="session-1", **extra):
    message = {
        "type": "hello",
        "transport": "udp",
        "session_id": session_id,
        "udp": {"server": "udp.example.com", "port": 8884, "key": KEY_HEX, "nonce": NONCE_HEX},
    }
    message.update(extra)
    return json.dumps(message)


class FakeMqtt:
    def __init__(self, connect_result=True, reply=None):
        self.connect_result = connect_result
        self.reply = reply
        self.published = []
        self.connect_args = None
        self.keep_alive = None
        self.message_handler = None
        self.disconnected_handler = None
        self.connected = False
        self.disconnected = False

    def set_keep_alive(self, seconds):
        self.keep_alive = seconds

    def on_disconnected(self, callback):
        self.disconnected_handler = callback

    def on_message(self, callback):
        self.message_handler = callback

    def connect(self, endpoint, port, client_id, username, password):
        self.connect_args = (endpoint, port, client_id, username, password)
        self.connected = self.connect_result
        return self.connect_result

    def is_connected(self):
        return self.connected

    def disconnect(self):
        self.disconnected = True
        self.connected = False

    def publish(self, topic, payload):
        self.published.append((topic, payload))
        if self.reply is not None and json.loads(payload).get("type") == "hello":
            self.message_handler(topic, self.reply)


class FakeUdp:
    def __init__(self):
        self.sent = []
        self.connected_to = None
        self.handler = None
        self.closed = False

    def on_message(self, callback):
        self.handler = callback

    def connect(self, server, port):
        self.connected_to = (server, port)

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True


class Fakes:
    def __init__(self, connect_result=True, reply=None, settings=None):
        self.store = SettingsStore()
        password = "password"
        values = {
            "endpoint": "mqtt.example.com",
            "client_id": "device-1",
            "username": "user",
            "password": password,
            "publish_topic": "devices/out",
        }
        if settings is not None:
            values = settings
        self.store.write("mqtt", values)
        self.mqtts = []
        self.udps = []
        self.connect_result = connect_result
        self.reply = reply

    def make_mqtt(self):
        client = FakeMqtt(self.connect_result, self.reply)
        self.mqtts.append(client)
        return client

    def make_udp(self):
        udp = FakeUdp()
        self.udps.append(udp)
        return udp


def test_connects_with_settings():
    fakes = Fakes()
    MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    mqtt = fakes.mqtts[0]
    assert mqtt.connect_args == ("mqtt.example.com", 8883, "device-1", "user", "password")
    assert mqtt.keep_alive == 90


def test_missing_endpoint_creates_no_client():
    fakes = Fakes(settings={"client_id": "device-1"})
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert fakes.mqtts == []
    assert protocol.start_mqtt_client() is False
    assert protocol.open_audio_channel() is False


def test_connect_failure_reports_error():
    fakes = Fakes(connect_result=False)
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    errors = []
    protocol.on_network_error(errors.append)
    assert protocol.start_mqtt_client() is False
    assert errors == ["无法连接服务"]
    assert fakes.mqtts[0].disconnected is True


def test_open_channel_sends_hello_and_connects_udp():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    opened = []
    protocol.on_audio_channel_opened(lambda: opened.append(True))
    assert protocol.open_audio_channel() is True
    topic, payload = fakes.mqtts[0].published[0]
    hello = json.loads(payload)
    assert topic == "devices/out"
    assert hello["type"] == "hello"
    assert hello["version"] == 3
    assert hello["transport"] == "udp"
    assert hello["audio_params"]["sample_rate"] == 16000
    assert fakes.udps[0].connected_to == ("udp.example.com", 8884)
    assert protocol.session_id == "session-1"
    assert protocol.is_audio_channel_opened() is True
    assert opened == [True]


def test_hello_timeout_reports_error():
    fakes = Fakes()
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 0.01)
    errors = []
    protocol.on_network_error(errors.append)
    assert protocol.open_audio_channel() is False
    assert errors == ["等待响应超时"]
    assert protocol.is_audio_channel_opened() is False


def test_reconnects_when_disconnected():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    fakes.mqtts[0].connected = False
    assert protocol.open_audio_channel() is True
    assert len(fakes.mqtts) == 2
    assert fakes.mqtts[0].disconnected is True


def test_audio_packet_layout_and_round_trip():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert protocol.open_audio_channel() is True
    data = b"opus frame"
    protocol.send_audio(data)
    packet = fakes.udps[0].sent[0]
    assert packet[0] == 0x01
    assert int.from_bytes(packet[2:4], "big") == len(data)
    assert int.from_bytes(packet[12:16], "big") == 1
    assert len(packet) == 16 + len(data)
    assert packet[16:] != data

    received = []
    protocol.on_incoming_audio(received.append)
    protocol.handle_udp_packet(packet)
    assert received == [data]


def test_sequence_increments():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert protocol.open_audio_channel() is True
    protocol.send_audio(b"a")
    protocol.send_audio(b"b")
    sequences = [int.from_bytes(p[12:16], "big") for p in fakes.udps[0].sent]
    assert sequences == [1, 2]


def test_old_sequence_is_dropped():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert protocol.open_audio_channel() is True
    protocol.send_audio(b"first")
    protocol.send_audio(b"second")
    first, second = fakes.udps[0].sent
    received = []
    protocol.on_incoming_audio(received.append)
    protocol.handle_udp_packet(second)
    protocol.handle_udp_packet(first)
    assert received == [b"second"]


def test_wrong_type_and_short_packets_are_dropped():
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert protocol.open_audio_channel() is True
    protocol.send_audio(b"frame")
    packet = fakes.udps[0].sent[0]
    received = []
    protocol.on_incoming_audio(received.append)
    protocol.handle_udp_packet(b"\x02" + packet[1:])
    protocol.handle_udp_packet(packet[:8])
    assert received == []


def test_goodbye_for_session_closes_channel():
    tasks = []
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, tasks.append, 1.0)
    assert protocol.open_audio_channel() is True
    closed = []
    protocol.on_audio_channel_closed(lambda: closed.append(True))
    protocol.handle_message("t", json.dumps({"type": "goodbye", "session_id": "session-1"}))
    assert len(tasks) == 1
    tasks[0]()
    assert fakes.udps[0].closed is True
    assert protocol.is_audio_channel_opened() is False
    assert json.loads(fakes.mqtts[0].published[-1][1]) == {
        "session_id": "session-1",
        "type": "goodbye",
    }
    assert closed == [True]


def test_goodbye_for_other_session_is_ignored():
    tasks = []
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, tasks.append, 1.0)
    assert protocol.open_audio_channel() is True
    protocol.handle_message("t", json.dumps({"type": "goodbye", "session_id": "other"}))
    assert tasks == []
    assert protocol.is_audio_channel_opened() is True


def test_goodbye_without_session_closes():
    tasks = []
    fakes = Fakes(reply=server_hello())
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, tasks.append, 1.0)
    assert protocol.open_audio_channel() is True
    protocol.handle_message("t", json.dumps({"type": "goodbye"}))
    assert len(tasks) == 1


def test_other_messages_go_to_json_callback():
    fakes = Fakes()
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    messages = []
    protocol.on_incoming_json(messages.append)
    protocol.handle_message("t", json.dumps({"type": "tts", "state": "start"}))
    protocol.handle_message("t", "not json")
    protocol.handle_message("t", json.dumps({"state": "start"}))
    assert messages == [{"type": "tts", "state": "start"}]


def test_sample_rate_from_hello():
    fakes = Fakes(reply=server_hello(audio_params={"sample_rate": 24000}))
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    assert protocol.open_audio_channel() is True
    assert protocol.server_sample_rate == 24000


def test_send_text_without_topic_publishes_nothing():
    fakes = Fakes(settings={"endpoint": "mqtt.example.com"})
    protocol = MqttProtocol(fakes.store, fakes.make_mqtt, fakes.make_udp, None, 1.0)
    protocol.send_text('{"type":"listen"}')
    assert fakes.mqtts[0].published == []


def test_decode_hex_string():
    assert decode_hex_string("0aFf") == b"\x0a\xff"
    assert decode_hex_string("zz") == b"\x00"
    assert decode_hex_string("abc") == b"\xab\xc0"


def test_decode_hex_string_round_trip():
    raw = bytes(range(256))
    assert decode_hex_string(raw.hex()) == raw
    assert decode_hex_string(raw.hex().upper()) == raw