[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "voicelink"
version = "0.1.0"
description = "Client-side building blocks for a voice assistant device: IoT thing descriptors, settings, firmware update checks, MQTT/UDP and WebSocket session protocols, and LED state indicators."
requires-python = ">=3.10"
keywords = ["voice assistant", "iot", "mqtt", "udp", "websocket", "ota", "led"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
    "Topic :: Home Automation",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["voicelink"]

[tool.pytest.ini_options]
addopts = "-ra"
