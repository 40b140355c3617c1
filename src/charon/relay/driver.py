"""USB relay board driver.

The bridge only needs three things from the hardware: switch a channel,
read back a state snapshot (used as a liveness probe) and close the
connection. Any I/O failure surfaces as ``OSError``; pyserial's
``SerialException`` already derives from it.
"""

from __future__ import annotations

from typing import Protocol

import serial

from charon.logging_abstraction import get_logger

__all__ = [
    "FRAME_HEADER",
    "RelayDriver",
    "SerialRelayBoard",
    "build_frame",
    "open_serial_board",
]

logger = get_logger(__name__)

FRAME_HEADER = 0xA0
_SERIAL_TIMEOUT = 1.0


class RelayDriver(Protocol):
    """Live connection to a relay board."""

    def set_relay_state(self, channel: int, on: bool) -> None: ...

    def get_relay_state(self) -> dict[int, bool]: ...

    def close(self) -> None: ...


def build_frame(channel: int, on: bool) -> bytes:
    """Return the 4-byte LCUS command frame: header, channel, state, checksum."""
    if not 0 < channel < 0xFF:
        msg = f"channel {channel} out of range"
        raise ValueError(msg)
    state = 0x01 if on else 0x00
    return bytes([FRAME_HEADER, channel, state, (FRAME_HEADER + channel + state) & 0xFF])


class SerialRelayBoard:
    """LCUS-type USB relay board behind a USB-serial bridge (CH340).

    The board offers no state readback, so :meth:`get_relay_state` probes the
    serial port and returns the last commanded state of each channel.
    """

    lp: str = "SerialRelayBoard:"

    def __init__(self, port: str, baudrate: int, channels: int = 2) -> None:
        self.port: str = port
        self.baudrate: int = baudrate
        self._states: dict[int, bool] = dict.fromkeys(range(1, channels + 1), False)
        self._serial: serial.Serial | None = None

    def open(self) -> None:
        lp = f"{self.lp}open:"
        # serial_for_url also takes pyserial URLs such as loop:// and rfc2217://
        self._serial = serial.serial_for_url(
            self.port,
            self.baudrate,
            timeout=_SERIAL_TIMEOUT,
            write_timeout=_SERIAL_TIMEOUT,
        )
        logger.info("%s Opened relay board on %s @ %s baud", lp, self.port, self.baudrate)

    def _port(self) -> serial.Serial:
        if self._serial is None or not self._serial.is_open:
            msg = f"relay port {self.port} is not open"
            raise serial.SerialException(msg)
        return self._serial

    def set_relay_state(self, channel: int, on: bool) -> None:
        port = self._port()
        frame = build_frame(channel, on)
        port.write(frame)
        port.flush()
        self._states[channel] = on
        logger.debug("%s wrote %s", self.lp, frame.hex(" "))

    def get_relay_state(self) -> dict[int, bool]:
        # in_waiting issues an ioctl on the device, which fails once it is unplugged
        _ = self._port().in_waiting
        return dict(self._states)

    def close(self) -> None:
        if self._serial is not None:
            try:
                self._serial.close()
            finally:
                self._serial = None


def open_serial_board(port: str, baudrate: int) -> SerialRelayBoard:
    """Open a SerialRelayBoard; raises ``OSError`` when the device is absent."""
    board = SerialRelayBoard(port, baudrate)
    board.open()
    return board
