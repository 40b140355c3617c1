"""Charon: USB relay door chime / opener bridge for MQTT and HTTP."""

__version__ = "0.3.0"
