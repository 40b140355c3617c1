"""MQTT surface of Charon.

- client.py: MQTTClient connection lifecycle and topic layout
- command_routing.py: inbound command topics -> relay pulses / chime toggle
- discovery.py: Home Assistant discovery configs
- state_updates.py: availability, chime switch state, doorbell events
"""

from .client import MQTTClient, Topics
from .command_routing import CommandRouter, parse_pulse_duration, resolve_pulse_duration
from .discovery import DiscoveryHelper
from .state_updates import StateUpdateHelper

__all__ = [
    "CommandRouter",
    "DiscoveryHelper",
    "MQTTClient",
    "StateUpdateHelper",
    "Topics",
    "parse_pulse_duration",
    "resolve_pulse_duration",
]
