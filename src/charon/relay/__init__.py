"""Relay hardware access: driver, access gate, pulse engine and controller state."""

from .controller import RelayController
from .driver import RelayDriver, SerialRelayBoard, open_serial_board
from .gate import HandleState, HardwareGate
from .pulse import PulseEngine

__all__ = [
    "HandleState",
    "HardwareGate",
    "PulseEngine",
    "RelayController",
    "RelayDriver",
    "SerialRelayBoard",
    "open_serial_board",
]
