from __future__ import annotations

from functools import partial

from charon.logging_abstraction import get_logger
from charon.relay.driver import open_serial_board
from charon.relay.gate import HandleState, HardwareGate, RelayOpener
from charon.relay.pulse import PulseEngine
from charon.structs import Channel, CharonEnv

__all__ = ["RelayController"]

logger = get_logger(__name__)


class RelayController:
    """The one stateful object of the bridge.

    Holds the Gate, the per-channel Pulse Engine and the chime-enabled
    toggle. Both control surfaces get this instance passed in.
    """

    lp: str = "RelayController:"

    def __init__(self, opener: RelayOpener) -> None:
        self.gate: HardwareGate = HardwareGate(opener)
        self.engine: PulseEngine = PulseEngine(self.gate, Channel)
        self.chime_enabled: bool = True

    @classmethod
    def from_env(cls, env: CharonEnv) -> RelayController:
        return cls(partial(open_serial_board, env.relay_port, env.relay_baudrate))

    @property
    def hardware_state(self) -> HandleState:
        return self.gate.state

    async def pulse(self, channel: Channel | int, duration_ms: int) -> None:
        await self.engine.pulse(int(channel), duration_ms)

    def set_chime_enabled(self, enabled: bool) -> bool:
        """Update the chime toggle. Returns True if the value changed."""
        changed = self.chime_enabled != enabled
        self.chime_enabled = enabled
        logger.info(
            "%s Chime %s%s",
            self.lp,
            "enabled" if enabled else "disabled",
            "" if changed else " (unchanged)",
        )
        return changed

    async def close(self) -> None:
        await self.engine.drain()
        await self.gate.close()
