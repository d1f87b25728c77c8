"""Building blocks for a voice assistant device client: things, settings, firmware updates, protocols and LEDs."""

__version__ = "0.1.0"