"""Speech-to-text WebSocket gateway."""

__version__ = "1.0.0"
