"""Exception hierarchy for the relay bridge.

Hardware and payload errors are caught at the command routing boundary (MQTT
receiver, HTTP handlers) and turned into a log line and, for HTTP, an error
response. Only ConfigError is allowed to end the process.
"""

from __future__ import annotations


class CharonError(Exception):
    """Base class for all bridge errors."""


class ConfigError(CharonError):
    """Invalid startup configuration (fatal).

    Attributes:
        setting: Name of the offending environment variable

    """

    def __init__(self, setting: str, reason: str) -> None:
        """Initialize config error with the setting name and reason."""
        self.setting: str = setting
        self.reason: str = reason
        super().__init__(f"Invalid configuration for {setting}: {reason}")


class HardwareError(CharonError):
    """Base class for relay hardware errors."""


class HardwareUnavailableError(HardwareError):
    """The relay board could not be opened or failed its liveness probe.

    Recoverable: the Gate retries acquisition on the next pulse.
    """

    def __init__(self, reason: str) -> None:
        """Initialize unavailable error with reason."""
        self.reason: str = reason
        super().__init__(f"Relay hardware unavailable: {reason}")


class HardwareFaultError(HardwareError):
    """A relay state set failed on a live handle.

    Attributes:
        channel: Relay channel number
        state: Target state of the failed set

    """

    def __init__(self, channel: int, state: bool, reason: str) -> None:
        """Initialize fault with channel, target state and reason."""
        self.channel: int = channel
        self.state: bool = state
        self.reason: str = reason
        target = "on" if state else "off"
        super().__init__(f"Relay {channel} failed to switch {target}: {reason}")


class PulseError(CharonError):
    """Base class for pulse failures raised by the PulseEngine."""

    def __init__(self, channel: int, message: str) -> None:
        """Initialize pulse error with channel and message."""
        self.channel: int = channel
        super().__init__(message)


class PulseHardwareUnavailableError(PulseError):
    """Pulse refused because the relay board is not reachable (nothing was switched)."""

    def __init__(self, channel: int, cause: HardwareUnavailableError) -> None:
        """Initialize from the Gate's unavailable error."""
        self.cause: HardwareUnavailableError = cause
        super().__init__(channel, f"Pulse on relay {channel} aborted: {cause.reason}")


class PulseHardwareFaultError(PulseError):
    """Pulse failed while switching the relay."""

    def __init__(self, channel: int, cause: HardwareFaultError) -> None:
        """Initialize from the underlying hardware fault."""
        self.cause: HardwareFaultError = cause
        super().__init__(channel, f"Pulse on relay {channel} faulted: {cause}")


class PayloadError(CharonError):
    """Malformed inbound control message.

    Attributes:
        topic: Topic (or HTTP path) the payload arrived on
        payload: Raw payload

    """

    def __init__(self, topic: str, payload: bytes | str, reason: str) -> None:
        """Initialize payload error with topic, payload and reason."""
        self.topic: str = topic
        self.payload: bytes | str = payload
        self.reason: str = reason
        super().__init__(f"Bad payload on {topic}: {reason}")


class TransportError(CharonError):
    """MQTT publish could not be delivered to the broker."""

    def __init__(self, topic: str, reason: str) -> None:
        """Initialize transport error with topic and reason."""
        self.topic: str = topic
        self.reason: str = reason
        super().__init__(f"Publish to {topic} failed: {reason}")
