"""Pulse Engine: timed on -> wait -> off drive of one relay channel."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from charon.const import PULSE_DURATION_MAX_MS
from charon.exceptions import (
    HardwareFaultError,
    HardwareUnavailableError,
    PulseHardwareFaultError,
    PulseHardwareUnavailableError,
)
from charon.logging_abstraction import get_logger
from charon.relay.driver import RelayDriver
from charon.relay.gate import HardwareGate

__all__ = ["PulseEngine"]

logger = get_logger(__name__)


class PulseEngine:
    """Serializes pulses per channel on top of the HardwareGate.

    Each channel has its own ``asyncio.Lock`` held from the "on" set until
    the "off" set has been attempted. asyncio locks wake waiters in FIFO
    order, so pulses on one channel run in the order they asked for the
    lock. Pulses on different channels run concurrently.

    Once "on" has been set the sequence runs to completion even if the
    awaiting caller is cancelled.
    """

    lp: str = "PulseEngine:"

    def __init__(self, gate: HardwareGate, channels: Iterable[int]) -> None:
        self.gate: HardwareGate = gate
        self._locks: dict[int, asyncio.Lock] = {int(channel): asyncio.Lock() for channel in channels}
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def channels(self) -> tuple[int, ...]:
        return tuple(self._locks)

    def is_busy(self, channel: int) -> bool:
        """Return True while a pulse holds ``channel``."""
        return self._lock_for(channel).locked()

    def _lock_for(self, channel: int) -> asyncio.Lock:
        try:
            return self._locks[channel]
        except KeyError:
            msg = f"unknown relay channel {channel}"
            raise ValueError(msg) from None

    async def pulse(self, channel: int, duration_ms: int) -> None:
        """Drive ``channel`` on for ``duration_ms`` milliseconds, then off.

        Raises:
            ValueError: ``channel`` is not a configured relay, or
                ``duration_ms`` is outside 1..PULSE_DURATION_MAX_MS
            PulseHardwareUnavailableError: the board could not be reached;
                no lock was taken and no state was touched
            PulseHardwareFaultError: the on or the off set failed

        """
        lp = f"{self.lp}pulse:"
        lock = self._lock_for(channel)
        if not 0 < duration_ms <= PULSE_DURATION_MAX_MS:
            msg = f"pulse duration {duration_ms}ms out of range"
            raise ValueError(msg)
        seconds = duration_ms / 1000
        logger.info("%s Pulsing relay %s for %sms", lp, channel, duration_ms)

        try:
            handle = await self.gate.ensure_handle()
        except HardwareUnavailableError as e:
            raise PulseHardwareUnavailableError(channel, e) from e

        task = asyncio.create_task(
            self._drive(lock, handle, channel, seconds),
            name=f"pulse-relay-{channel}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._on_drive_done)
        await asyncio.shield(task)

    async def _drive(self, lock: asyncio.Lock, handle: RelayDriver, channel: int, seconds: float) -> None:
        lp = f"{self.lp}drive:"
        try:
            async with lock:
                try:
                    await self.gate.set_state(handle, channel, True)
                except HardwareFaultError as e:
                    logger.error("%s Relay %s could not be switched on: %s", lp, channel, e.reason)
                    raise PulseHardwareFaultError(channel, e) from e
                logger.info("%s Relay %s on", lp, channel)

                # once on, off is attempted exactly once whatever happens to the wait
                try:
                    await asyncio.sleep(seconds)
                finally:
                    try:
                        await self.gate.set_state(handle, channel, False)
                    except HardwareFaultError as e:
                        logger.error("%s Relay %s could not be switched off: %s", lp, channel, e.reason)
                        raise PulseHardwareFaultError(channel, e) from e
                    logger.info("%s Relay %s off", lp, channel)
        finally:
            await self.gate.release(handle)

    def _on_drive_done(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        # retrieve the result so a pulse whose caller went away still gets logged
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s %s finished with %r", self.lp, task.get_name(), task.exception())

    async def drain(self) -> None:
        """Wait for every in-flight pulse to finish its off transition."""
        if self._inflight:
            _ = await asyncio.gather(*self._inflight, return_exceptions=True)
