"""
Shared fixtures for unit tests.

Provides an in-memory relay board that records every state change with a
timestamp, an opener that can simulate an unplugged board, and a
ready-made RelayController / MQTTClient pair wired to them.
"""

from __future__ import annotations

import threading
import time
from unittest.mock import AsyncMock

import pytest

from charon.mqtt.client import MQTTClient
from charon.relay.controller import RelayController
from charon.structs import CharonEnv


class FakeRelayDriver:
    """RelayDriver double recording ``(monotonic time, channel, on)`` events."""

    def __init__(self) -> None:
        self.events: list[tuple[float, int, bool]] = []
        self.set_attempts: list[tuple[int, bool]] = []
        self.states: dict[int, bool] = {1: False, 2: False}
        self.fail_on: set[int] = set()
        self.fail_off: set[int] = set()
        self.fail_probe: bool = False
        self.probes: int = 0
        self.closed: bool = False
        self._lock = threading.Lock()

    def set_relay_state(self, channel: int, on: bool) -> None:
        with self._lock:
            self.set_attempts.append((channel, on))
            if self.closed:
                msg = "relay port is not open"
                raise OSError(msg)
            if (on and channel in self.fail_on) or (not on and channel in self.fail_off):
                msg = f"write to relay {channel} failed"
                raise OSError(msg)
            self.states[channel] = on
            self.events.append((time.monotonic(), channel, on))

    def get_relay_state(self) -> dict[int, bool]:
        self.probes += 1
        if self.fail_probe or self.closed:
            msg = "device reports readiness to read but returned no data"
            raise OSError(msg)
        return dict(self.states)

    def close(self) -> None:
        self.closed = True

    def windows(self, channel: int) -> list[tuple[float, float]]:
        """Return the (on, off) time windows recorded for ``channel``."""
        result: list[tuple[float, float]] = []
        started: float | None = None
        for ts, ch, on in self.events:
            if ch != channel:
                continue
            if on:
                assert started is None, "relay switched on twice without off"
                started = ts
            else:
                assert started is not None, "relay switched off while already off"
                result.append((started, ts))
                started = None
        return result


class FakeOpener:
    """Opener callable for HardwareGate; ``available = False`` simulates an unplugged board."""

    def __init__(self, available: bool = True) -> None:
        self.available: bool = available
        self.drivers: list[FakeRelayDriver] = []

    def __call__(self) -> FakeRelayDriver:
        if not self.available:
            msg = "[Errno 2] could not open port /dev/ttyUSB0: No such file or directory"
            raise OSError(msg)
        driver = FakeRelayDriver()
        self.drivers.append(driver)
        return driver

    @property
    def driver(self) -> FakeRelayDriver:
        return self.drivers[-1]


@pytest.fixture
def env() -> CharonEnv:
    return CharonEnv.from_environ({"IDENTIFIER": "test", "MQTT_BROKER_URL": "mqtt://broker.local:1883"})


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def controller(opener: FakeOpener) -> RelayController:
    return RelayController(opener)


@pytest.fixture
def mqtt_client(env: CharonEnv, controller: RelayController) -> MQTTClient:
    """MQTTClient that looks connected; publishes land on ``mqtt_client.client.publish``."""
    client = MQTTClient(env, controller)
    client.client = AsyncMock()
    client.client.publish = AsyncMock()
    client.client.subscribe = AsyncMock()
    client._connected = True
    return client
