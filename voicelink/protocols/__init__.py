"""Control and audio channel protocols over MQTT with UDP, or over a WebSocket."""