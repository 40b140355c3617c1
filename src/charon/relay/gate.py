"""Hardware Access Gate.

Owns the relay board handle. The handle is acquired lazily and checked on
every pulse, so a board plugged in after startup (or one that dropped off
the bus) is picked up on the next command without a restart.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import StrEnum

from charon.exceptions import HardwareFaultError, HardwareUnavailableError
from charon.logging_abstraction import get_logger
from charon.relay.driver import RelayDriver

__all__ = ["HandleState", "HardwareGate", "RelayOpener"]

logger = get_logger(__name__)

type RelayOpener = Callable[[], RelayDriver]


class HandleState(StrEnum):
    ABSENT = "absent"
    LIVE = "live"


class HardwareGate:
    """Lazy acquisition and liveness checking of the relay handle.

    Only :meth:`ensure_handle` creates or drops the handle, and it does so
    under the global lock. Every handle it returns is a lease: the caller
    uses it for the whole of its operation and hands it back with
    :meth:`release`. A dropped handle is closed once its last lease is
    released, so a failed probe never closes the port under an in-flight
    pulse.
    """

    lp: str = "HardwareGate:"

    def __init__(self, opener: RelayOpener) -> None:
        self._opener: RelayOpener = opener
        self._handle: RelayDriver | None = None
        self._leases: dict[RelayDriver, int] = {}
        self.global_lock: asyncio.Lock = asyncio.Lock()

    @property
    def state(self) -> HandleState:
        return HandleState.LIVE if self._handle is not None else HandleState.ABSENT

    def leases(self, handle: RelayDriver) -> int:
        return self._leases.get(handle, 0)

    async def ensure_handle(self) -> RelayDriver:
        """Open the board if absent, probe it if live, and lease the handle.

        Returns:
            The live handle; pass it to :meth:`release` when done

        Raises:
            HardwareUnavailableError: open failed, or the probe failed and the
                stale handle was discarded

        """
        lp = f"{self.lp}ensure_handle:"
        async with self.global_lock:
            if self._handle is None:
                try:
                    self._handle = await asyncio.to_thread(self._opener)
                except OSError as e:
                    logger.warning("%s Relay board not available: %s", lp, e)
                    raise HardwareUnavailableError(str(e)) from e
                logger.info("%s Relay board acquired", lp)
            else:
                handle = self._handle
                try:
                    states = await asyncio.to_thread(handle.get_relay_state)
                except OSError as e:
                    logger.warning("%s Liveness probe failed, dropping stale handle: %s", lp, e)
                    self._handle = None
                    await self._retire(handle)
                    raise HardwareUnavailableError(f"probe failed: {e}") from e
                logger.debug("%s Probe ok: %s", lp, states)

            handle = self._handle
            self._leases[handle] = self.leases(handle) + 1
            return handle

    async def release(self, handle: RelayDriver) -> None:
        """Return a lease taken by :meth:`ensure_handle`."""
        async with self.global_lock:
            remaining = self.leases(handle) - 1
            if remaining > 0:
                self._leases[handle] = remaining
                return
            _ = self._leases.pop(handle, None)
            if handle is self._handle:
                return
        logger.debug("%s Last lease on dropped handle released, closing it", self.lp)
        await asyncio.to_thread(self._close_quietly, handle)

    async def _retire(self, handle: RelayDriver) -> None:
        # caller holds global_lock and has already dropped ``handle``
        if self.leases(handle):
            logger.info(
                "%s Deferring close of dropped handle until in-flight pulses finish",
                self.lp,
                extra={"leases": self.leases(handle)},
            )
            return
        await asyncio.to_thread(self._close_quietly, handle)

    async def set_state(self, handle: RelayDriver, channel: int, on: bool) -> None:
        """Switch ``channel`` through a handle leased from :meth:`ensure_handle`.

        Raises:
            HardwareFaultError: the driver reported an I/O error

        """
        try:
            await asyncio.to_thread(handle.set_relay_state, channel, on)
        except OSError as e:
            raise HardwareFaultError(channel, on, str(e)) from e

    async def close(self) -> None:
        async with self.global_lock:
            handle, self._handle = self._handle, None
            if handle is not None:
                await self._retire(handle)
                logger.info("%s Relay board released", self.lp)

    def _close_quietly(self, handle: RelayDriver) -> None:
        try:
            handle.close()
        except OSError as e:
            logger.debug("%s close() on stale handle failed: %s", self.lp, e)
