"""Voice session over MQTT for control messages and encrypted UDP for audio."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from voicelink.protocols.protocol import Protocol, _dumps
from voicelink.settings import Settings, SettingsStore

logger = logging.getLogger(__name__)

MQTT_PORT = 8883
MQTT_PING_INTERVAL_SECONDS = 90
HELLO_TIMEOUT_S = 10.0
_NONCE_SIZE = 16
_KEY_SIZE = 16
_AUDIO_PACKET_TYPE = 0x01

Schedule = Callable[[Callable[[], None]], None]


def _run_now(task: Callable[[], None]) -> None:
    task()


def _hex_value(char: str) -> int:
    try:
        return int(char, 16)
    except ValueError:
        return 0


def decode_hex_string(hex_string: str) -> bytes:
    """Decode hex digit pairs; invalid or missing digits count as zero."""
    pairs = (hex_string[i:i + 2] for i in range(0, len(hex_string), 2))
    return bytes(
        (_hex_value(pair[0]) << 4) | (_hex_value(pair[1]) if len(pair) > 1 else 0)
        for pair in pairs
    )


def _aes_ctr(key: bytes, counter: bytes, data: bytes) -> bytes:
    cipher = Cipher(algorithms.AES(key), modes.CTR(counter)).encryptor()
    return cipher.update(data) + cipher.finalize()


class MqttProtocol(Protocol):
    """Uses an MQTT client from ``mqtt_factory`` and a UDP socket from ``udp_factory``.

    Connection details come from the ``mqtt`` namespace of the settings store.
    """

    def __init__(
        self,
        settings: SettingsStore,
        mqtt_factory: Callable[[], Any],
        udp_factory: Callable[[], Any],
        schedule: Optional[Schedule] = None,
        hello_timeout: float = HELLO_TIMEOUT_S,
    ) -> None:
        super().__init__()
        self._store = settings
        self._mqtt_factory = mqtt_factory
        self._udp_factory = udp_factory
        self._schedule = schedule or _run_now
        self._hello_timeout = hello_timeout
        self._hello = threading.Event()
        self._channel_lock = threading.Lock()
        self._mqtt: Any = None
        self._udp: Any = None
        self.endpoint = ""
        self._client_id = ""
        self._username = ""
        self._password = ""
        self._publish_topic = ""
        self._aes_key: Optional[bytes] = None
        self._aes_nonce = b""
        self._udp_server = ""
        self._udp_port = 0
        self._local_sequence = 0
        self._remote_sequence = 0
        self.start_mqtt_client()

    def start_mqtt_client(self) -> bool:
        """(Re)connect the MQTT client; False if no endpoint is set or connecting fails."""
        if self._mqtt is not None:
            logger.warning("Mqtt client already started")
            self._mqtt.disconnect()
            self._mqtt = None

        with Settings(self._store, "mqtt") as settings:
            self.endpoint = settings.get_string("endpoint")
            self._client_id = settings.get_string("client_id")
            self._username = settings.get_string("username")
            self._password = settings.get_string("password")
            self._publish_topic = settings.get_string("publish_topic")

        if not self.endpoint:
            logger.error("MQTT endpoint is not specified")
            return False

        client = self._mqtt_factory()
        self._mqtt = client
        client.set_keep_alive(MQTT_PING_INTERVAL_SECONDS)
        client.on_disconnected(lambda: logger.info("Disconnected from endpoint"))
        client.on_message(self.handle_message)

        logger.info("Connecting to endpoint %s", self.endpoint)
        if not client.connect(
            self.endpoint, MQTT_PORT, self._client_id, self._username, self._password
        ):
            self._emit_network_error("无法连接服务")
            return False
        logger.info("Connected to endpoint")
        return True

    def send_text(self, text: str) -> None:
        if not self._publish_topic or self._mqtt is None:
            return
        self._mqtt.publish(self._publish_topic, text)

    def send_audio(self, data: bytes) -> None:
        """Encrypt ``data`` and send it as one UDP packet prefixed by its nonce."""
        with self._channel_lock:
            if self._udp is None or self._aes_key is None:
                return
            self._local_sequence = (self._local_sequence + 1) & 0xFFFFFFFF
            nonce = bytearray(self._aes_nonce)
            nonce[2:4] = (len(data) & 0xFFFF).to_bytes(2, "big")
            nonce[12:16] = self._local_sequence.to_bytes(4, "big")
            counter = bytes(nonce)
            self._udp.send(counter + _aes_ctr(self._aes_key, counter, bytes(data)))

    def close_audio_channel(self) -> None:
        with self._channel_lock:
            if self._udp is not None:
                self._udp.close()
                self._udp = None
        self.send_text(_dumps({"session_id": self.session_id, "type": "goodbye"}))
        self._emit_closed()

    def open_audio_channel(self) -> bool:
        if self._mqtt is None or not self._mqtt.is_connected():
            logger.info("MQTT is not connected, try to connect now")
            if not self.start_mqtt_client():
                return False

        self.session_id = ""
        self._hello.clear()
        self.send_text(self._client_hello(3, "udp"))

        if not self._hello.wait(self._hello_timeout):
            self._emit_network_error("等待响应超时")
            return False
        self._hello.clear()

        with self._channel_lock:
            if self._udp is not None:
                self._udp.close()
            self._udp = self._udp_factory()
            self._udp.on_message(self.handle_udp_packet)
            self._udp.connect(self._udp_server, self._udp_port)

        self._emit_opened()
        return True

    def is_audio_channel_opened(self) -> bool:
        return self._udp is not None

    def handle_message(self, topic: str, payload: Any) -> None:
        """Handle one JSON message received on the MQTT connection."""
        try:
            root = json.loads(payload)
        except ValueError:
            logger.error("Failed to parse json message %s", payload)
            return
        if not isinstance(root, dict):
            logger.error("Failed to parse json message %s", payload)
            return
        message_type = root.get("type")
        if message_type is None:
            logger.error("Message type is not specified")
            return

        if message_type == "hello":
            self._parse_server_hello(root)
        elif message_type == "goodbye":
            session_id = root.get("session_id")
            if session_id is None or session_id == self.session_id:
                self._schedule(self.close_audio_channel)
        else:
            self._emit_json(root)

    def handle_udp_packet(self, data: bytes) -> None:
        """Decrypt one received audio packet and pass the audio on."""
        key = self._aes_key
        if key is None:
            return
        if len(data) < _NONCE_SIZE:
            logger.error("Invalid audio packet size: %d", len(data))
            return
        if data[0] != _AUDIO_PACKET_TYPE:
            logger.error("Invalid audio packet type: %x", data[0])
            return
        sequence = int.from_bytes(data[12:16], "big")
        if sequence < self._remote_sequence:
            logger.warning(
                "Received audio packet with old sequence: %d, expected: %d",
                sequence, self._remote_sequence,
            )
            return
        if sequence != self._remote_sequence + 1:
            logger.warning(
                "Received audio packet with wrong sequence: %d, expected: %d",
                sequence, self._remote_sequence + 1,
            )
        decrypted = _aes_ctr(key, bytes(data[:_NONCE_SIZE]), bytes(data[_NONCE_SIZE:]))
        self._emit_audio(decrypted)
        self._remote_sequence = sequence

    def _parse_server_hello(self, root: Dict[str, Any]) -> None:
        transport = root.get("transport")
        if transport != "udp":
            logger.error("Unsupported transport: %s", transport)
            return

        session_id = root.get("session_id")
        if isinstance(session_id, str):
            self.session_id = session_id
            logger.info("Session ID: %s", session_id)

        audio_params = root.get("audio_params")
        if isinstance(audio_params, dict) and "sample_rate" in audio_params:
            self.server_sample_rate = int(audio_params["sample_rate"])

        udp = root.get("udp")
        if not isinstance(udp, dict):
            logger.error("UDP is not specified")
            return
        try:
            server = str(udp["server"])
            port = int(udp["port"])
            key = decode_hex_string(str(udp["key"]))
            nonce = decode_hex_string(str(udp["nonce"]))
        except (KeyError, ValueError, TypeError):
            logger.error("Incomplete UDP parameters in server hello")
            return
        if len(nonce) != _NONCE_SIZE:
            logger.error("Invalid nonce length: %d", len(nonce))
            return

        self._udp_server = server
        self._udp_port = port
        self._aes_nonce = nonce
        self._aes_key = key[:_KEY_SIZE].ljust(_KEY_SIZE, b"\0")
        self._local_sequence = 0
        self._remote_sequence = 0
        self._hello.set()