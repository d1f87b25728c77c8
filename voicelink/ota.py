"""Firmware version check and over-the-air upgrade download."""

from __future__ import annotations

import json
import logging
import re
import time
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Protocol

from voicelink.settings import Settings, SettingsStore

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 512
_PROGRESS_INTERVAL_S = 1.0

# Image layout: image header (24 bytes), first segment header (8 bytes),
# then the application description (256 bytes) whose version field sits at
# offset 16 and is 32 bytes long.
_IMAGE_HEADER_SIZE = 24
_SEGMENT_HEADER_SIZE = 8
_APP_DESC_SIZE = 256
_VERSION_OFFSET = _IMAGE_HEADER_SIZE + _SEGMENT_HEADER_SIZE + 16
_VERSION_SIZE = 32
IMAGE_PREFIX_SIZE = _IMAGE_HEADER_SIZE + _SEGMENT_HEADER_SIZE + _APP_DESC_SIZE

_LEADING_INT = re.compile(r"\s*[+-]?\d+")

ProgressCallback = Callable[[int, int], None]


class OtaError(Exception):
    """Raised when a version check or an upgrade fails."""


class FirmwareSink(Protocol):
    """Destination of a downloaded firmware image."""

    def write(self, data: bytes) -> Any: ...

    def finish(self) -> Any: ...

    def abort(self) -> Any: ...


class _UrllibClient:
    def open(self, method: str, url: str, headers: Dict[str, str], body: Optional[bytes]) -> Any:
        request = urllib.request.Request(url, data=body, headers=headers, method=method)
        return urllib.request.urlopen(request)


def parse_version(version: str) -> List[int]:
    """Split a dotted version into integers, each read from its leading digits."""
    segments = version.split(".")
    if segments and segments[-1] == "":
        segments.pop()
    numbers = []
    for segment in segments:
        match = _LEADING_INT.match(segment)
        if match is None:
            raise ValueError(f"Invalid version segment: {segment!r}")
        numbers.append(int(match.group()))
    return numbers


def is_new_version_available(current_version: str, new_version: str) -> bool:
    """True if ``new_version`` is newer than ``current_version``."""
    current = parse_version(current_version)
    newer = parse_version(new_version)
    for new_part, current_part in zip(newer, current):
        if new_part > current_part:
            return True
        if new_part < current_part:
            return False
    return len(newer) > len(current)


def read_image_version(header: bytes) -> str:
    """Read the version string from the start of a firmware image."""
    if len(header) < IMAGE_PREFIX_SIZE:
        raise ValueError(f"Image header needs {IMAGE_PREFIX_SIZE} bytes, got {len(header)}")
    raw = bytes(header[_VERSION_OFFSET:_VERSION_OFFSET + _VERSION_SIZE])
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class Ota:
    """Asks a server for the latest firmware and downloads it."""

    def __init__(
        self,
        current_version: str,
        http_client: Any = None,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self.current_version = current_version
        self._http = http_client if http_client is not None else _UrllibClient()
        self._store = settings_store if settings_store is not None else SettingsStore()
        self._check_version_url = ""
        self._post_data = ""
        self._headers: Dict[str, str] = {}
        self._upgrade_callback: Optional[ProgressCallback] = None
        self.has_new_version = False
        self.has_mqtt_config = False
        self.has_activation_code = False
        self.activation_message = ""
        self.activation_code = ""
        self.firmware_version = ""
        self.firmware_url = ""

    def set_check_version_url(self, url: str) -> None:
        self._check_version_url = url

    def set_header(self, key: str, value: str) -> None:
        self._headers[key] = value

    def set_post_data(self, post_data: str) -> None:
        self._post_data = post_data

    def check_version(self) -> bool:
        """Query the server; store activation and MQTT data; return whether a newer firmware exists."""
        logger.info("Current version: %s", self.current_version)
        if len(self._check_version_url) < 10:
            raise OtaError("Check version URL is not properly set")

        headers = dict(self._headers)
        headers["Content-Type"] = "application/json"
        method = "POST" if self._post_data else "GET"
        body = self._post_data.encode("utf-8") if self._post_data else None
        try:
            response = self._http.open(method, self._check_version_url, headers, body)
        except OSError as exc:
            raise OtaError("Failed to open HTTP connection") from exc
        try:
            payload = response.read()
        except OSError as exc:
            raise OtaError("Failed to read HTTP response") from exc
        finally:
            response.close()

        try:
            root = json.loads(payload)
        except ValueError as exc:
            raise OtaError("Failed to parse JSON response") from exc
        if not isinstance(root, dict):
            raise OtaError("Failed to parse JSON response")

        activation = root.get("activation")
        if activation is not None:
            if isinstance(activation, dict):
                if "message" in activation:
                    self.activation_message = _text(activation["message"])
                if "code" in activation:
                    self.activation_code = _text(activation["code"])
            self.has_activation_code = True

        mqtt = root.get("mqtt")
        if mqtt is not None:
            if isinstance(mqtt, dict):
                with Settings(self._store, "mqtt", True) as settings:
                    for key, value in mqtt.items():
                        if isinstance(value, str) and settings.get_string(key) != value:
                            settings.set_string(key, value)
            self.has_mqtt_config = True

        firmware = root.get("firmware")
        if not isinstance(firmware, dict):
            raise OtaError("Failed to get firmware object")
        if "version" not in firmware:
            raise OtaError("Failed to get version object")
        if "url" not in firmware:
            raise OtaError("Failed to get url object")
        self.firmware_version = _text(firmware["version"])
        self.firmware_url = _text(firmware["url"])

        self.has_new_version = is_new_version_available(self.current_version, self.firmware_version)
        if self.has_new_version:
            logger.info("New version available: %s", self.firmware_version)
        else:
            logger.info("Current is the latest version")
        return self.has_new_version

    def start_upgrade(self, sink: FirmwareSink, callback: Optional[ProgressCallback] = None) -> str:
        """Download the firmware found by the last check, reporting (percent, bytes/s)."""
        self._upgrade_callback = callback
        return self.upgrade(self.firmware_url, sink)

    def upgrade(self, firmware_url: str, sink: FirmwareSink) -> str:
        """Stream the image at ``firmware_url`` into ``sink``; return the new version."""
        logger.info("Upgrading firmware from %s", firmware_url)
        try:
            response = self._http.open("GET", firmware_url, {}, None)
        except OSError as exc:
            raise OtaError("Failed to open HTTP connection") from exc

        begun = False
        new_version = ""
        try:
            content_length = getattr(response, "length", None) or 0
            if content_length <= 0:
                raise OtaError("Failed to get content length")

            header = bytearray()
            total_read = recent_read = 0
            last_calc = time.monotonic()
            while True:
                try:
                    chunk = response.read(_CHUNK_SIZE)
                except OSError as exc:
                    raise OtaError("Failed to read HTTP data") from exc

                recent_read += len(chunk)
                total_read += len(chunk)
                if not chunk or time.monotonic() - last_calc >= _PROGRESS_INTERVAL_S:
                    progress = total_read * 100 // content_length
                    logger.info(
                        "Progress: %d%% (%d/%d), Speed: %dB/s",
                        progress, total_read, content_length, recent_read,
                    )
                    if self._upgrade_callback is not None:
                        self._upgrade_callback(progress, recent_read)
                    last_calc = time.monotonic()
                    recent_read = 0

                if not chunk:
                    break

                if not begun:
                    header += chunk
                    if len(header) < IMAGE_PREFIX_SIZE:
                        continue
                    new_version = read_image_version(header)
                    logger.info("New firmware version: %s", new_version)
                    if new_version == self.current_version:
                        raise OtaError("Firmware version is the same, skipping upgrade")
                    begun = True
                    chunk = bytes(header)
                    header = bytearray()

                try:
                    sink.write(chunk)
                except Exception as exc:
                    raise OtaError("Failed to write OTA data") from exc
        except Exception:
            if begun:
                sink.abort()
            raise
        finally:
            response.close()

        if not begun:
            raise OtaError("Firmware image is truncated")
        try:
            sink.finish()
        except Exception as exc:
            raise OtaError("Failed to end OTA") from exc
        logger.info("Firmware upgrade successful")
        return new_version