"""chatbot-bridge: API HTTP sopra una sessione browser verso una chat web."""

__version__ = "1.0.0"
