"""Common messaging of a voice session: callbacks and the JSON control messages."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

OPUS_FRAME_DURATION_MS = 60
DEFAULT_SAMPLE_RATE = 16000

JsonCallback = Callable[[Dict[str, Any]], None]
AudioCallback = Callable[[bytes], None]
EventCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


class AbortReason(Enum):
    """Why the device asks the server to stop speaking."""

    NONE = "none"
    WAKE_WORD_DETECTED = "wake_word_detected"


class ListeningMode(Enum):
    """How listening ends; the value is the mode name sent to the server."""

    AUTO_STOP = "auto"
    MANUAL_STOP = "manual"
    ALWAYS_ON = "realtime"


def _dumps(message: Dict[str, Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


class Protocol(ABC):
    """A transport carrying JSON control messages and audio frames to the server."""

    def __init__(self) -> None:
        self.server_sample_rate = DEFAULT_SAMPLE_RATE
        self.session_id = ""
        self._on_incoming_json: Optional[JsonCallback] = None
        self._on_incoming_audio: Optional[AudioCallback] = None
        self._on_audio_channel_opened: Optional[EventCallback] = None
        self._on_audio_channel_closed: Optional[EventCallback] = None
        self._on_network_error: Optional[ErrorCallback] = None

    def on_incoming_audio(self, callback: Optional[AudioCallback]) -> None:
        self._on_incoming_audio = callback

    def on_incoming_json(self, callback: Optional[JsonCallback]) -> None:
        self._on_incoming_json = callback

    def on_audio_channel_opened(self, callback: Optional[EventCallback]) -> None:
        self._on_audio_channel_opened = callback

    def on_audio_channel_closed(self, callback: Optional[EventCallback]) -> None:
        self._on_audio_channel_closed = callback

    def on_network_error(self, callback: Optional[ErrorCallback]) -> None:
        self._on_network_error = callback

    def _emit_json(self, root: Dict[str, Any]) -> None:
        if self._on_incoming_json is not None:
            self._on_incoming_json(root)

    def _emit_audio(self, data: bytes) -> None:
        if self._on_incoming_audio is not None:
            self._on_incoming_audio(data)

    def _emit_opened(self) -> None:
        if self._on_audio_channel_opened is not None:
            self._on_audio_channel_opened()

    def _emit_closed(self) -> None:
        if self._on_audio_channel_closed is not None:
            self._on_audio_channel_closed()

    def _emit_network_error(self, message: str) -> None:
        logger.error("Network error: %s", message)
        if self._on_network_error is not None:
            self._on_network_error(message)

    def _client_hello(self, version: int, transport: str) -> str:
        return _dumps(
            {
                "type": "hello",
                "version": version,
                "transport": transport,
                "audio_params": {
                    "format": "opus",
                    "sample_rate": DEFAULT_SAMPLE_RATE,
                    "channels": 1,
                    "frame_duration": OPUS_FRAME_DURATION_MS,
                },
            }
        )

    @abstractmethod
    def open_audio_channel(self) -> bool:
        """Open the audio channel; report failures through the network error callback."""

    @abstractmethod
    def close_audio_channel(self) -> None:
        """Close the audio channel."""

    @abstractmethod
    def is_audio_channel_opened(self) -> bool:
        """True while audio can be exchanged."""

    @abstractmethod
    def send_audio(self, data: bytes) -> None:
        """Send one encoded audio frame."""

    @abstractmethod
    def send_text(self, text: str) -> None:
        """Send one JSON control message."""

    def send_wake_word_detected(self, wake_word: str) -> None:
        self.send_text(
            _dumps(
                {
                    "session_id": self.session_id,
                    "type": "listen",
                    "state": "detect",
                    "text": wake_word,
                }
            )
        )

    def send_start_listening(self, mode: ListeningMode) -> None:
        self.send_text(
            _dumps(
                {
                    "session_id": self.session_id,
                    "type": "listen",
                    "state": "start",
                    "mode": mode.value,
                }
            )
        )

    def send_stop_listening(self) -> None:
        self.send_text(
            _dumps({"session_id": self.session_id, "type": "listen", "state": "stop"})
        )

    def send_abort_speaking(self, reason: AbortReason) -> None:
        message: Dict[str, Any] = {"session_id": self.session_id, "type": "abort"}
        if reason is AbortReason.WAKE_WORD_DETECTED:
            message["reason"] = reason.value
        self.send_text(_dumps(message))

    def send_iot_descriptors(self, descriptors: str) -> None:
        """Send thing descriptors, given as a ready JSON array."""
        self.send_text(
            '{"session_id":' + json.dumps(self.session_id, ensure_ascii=False)
            + ',"type":"iot","descriptors":' + descriptors + "}"
        )

    def send_iot_states(self, states: str) -> None:
        """Send thing states, given as a ready JSON array."""
        self.send_text(
            '{"session_id":' + json.dumps(self.session_id, ensure_ascii=False)
            + ',"type":"iot","states":' + states + "}"
        )