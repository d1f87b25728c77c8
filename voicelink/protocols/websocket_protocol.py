"""Voice session carried over a single websocket: JSON as text, audio as binary."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Union

from voicelink.protocols.protocol import Protocol

logger = logging.getLogger(__name__)

HELLO_TIMEOUT_S = 10.0


class WebsocketProtocol(Protocol):
    """Connects a websocket from ``websocket_factory`` to ``url`` for each audio channel."""

    def __init__(
        self,
        url: str,
        access_token: str,
        device_id: str,
        client_uuid: str,
        websocket_factory: Callable[[], Any],
        hello_timeout: float = HELLO_TIMEOUT_S,
    ) -> None:
        super().__init__()
        self._url = url
        self._access_token = access_token
        self._device_id = device_id
        self._client_uuid = client_uuid
        self._websocket_factory = websocket_factory
        self._hello_timeout = hello_timeout
        self._hello = threading.Event()
        self._websocket: Any = None

    def send_audio(self, data: bytes) -> None:
        if self._websocket is None:
            return
        self._websocket.send(bytes(data), binary=True)

    def send_text(self, text: str) -> None:
        if self._websocket is None:
            return
        self._websocket.send(text, binary=False)

    def is_audio_channel_opened(self) -> bool:
        return self._websocket is not None and bool(self._websocket.is_connected())

    def close_audio_channel(self) -> None:
        if self._websocket is not None:
            self._websocket.close()
            self._websocket = None

    def open_audio_channel(self) -> bool:
        self.close_audio_channel()

        websocket = self._websocket_factory()
        self._websocket = websocket
        websocket.set_header("Authorization", "Bearer " + self._access_token)
        websocket.set_header("Protocol-Version", "1")
        websocket.set_header("Device-Id", self._device_id)
        websocket.set_header("X-Uuid", self._client_uuid)
        websocket.on_data(self.handle_data)
        websocket.on_disconnected(self._handle_disconnected)

        self._hello.clear()
        if not websocket.connect(self._url):
            self._emit_network_error("无法连接服务")
            return False

        websocket.send(self._client_hello(1, "websocket"), binary=False)

        if not self._hello.wait(self._hello_timeout):
            self._emit_network_error("等待响应超时")
            return False
        self._hello.clear()

        self._emit_opened()
        return True

    def handle_data(self, data: Union[bytes, str], binary: bool) -> None:
        """Handle one websocket frame: audio when binary, a JSON message otherwise."""
        if binary:
            self._emit_audio(bytes(data))
            return
        text = data.decode("utf-8", errors="replace") if isinstance(data, (bytes, bytearray)) else data
        try:
            root = json.loads(text)
        except ValueError:
            root = None
        if not isinstance(root, dict) or "type" not in root:
            logger.error("Missing message type, data: %s", text)
            return
        if root["type"] == "hello":
            self._parse_server_hello(root)
        else:
            self._emit_json(root)

    def _handle_disconnected(self) -> None:
        logger.info("Websocket disconnected")
        self._emit_closed()

    def _parse_server_hello(self, root: Dict[str, Any]) -> None:
        transport = root.get("transport")
        if transport != "websocket":
            logger.error("Unsupported transport: %s", transport)
            return
        audio_params: Optional[Any] = root.get("audio_params")
        if isinstance(audio_params, dict) and "sample_rate" in audio_params:
            self.server_sample_rate = int(audio_params["sample_rate"])
        self._hello.set()