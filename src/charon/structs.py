from __future__ import annotations

import os
from collections.abc import Mapping
from enum import IntEnum
from typing import Protocol
from urllib.parse import urlsplit

from pydantic import BaseModel

from charon.const import (
    CHIME_DEFAULT_DURATION_MS,
    DEFAULT_BROKER_URL,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_IDENTIFIER,
    DEFAULT_NOTIFY_DURATIONS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_RELAY_BAUDRATE,
    DEFAULT_RELAY_PORT,
    OPENER_DEFAULT_DURATION_MS,
    PULSE_DURATION_MAX_MS,
    YES_ANSWER,
)
from charon.exceptions import ConfigError
from charon.utils import parse_decimal

__all__ = [
    "BrokerAddress",
    "Channel",
    "CharonEnv",
    "NotificationPublisherProtocol",
]

_MQTT_SCHEMES: dict[str, tuple[int, bool]] = {
    "mqtt": (1883, False),
    "tcp": (1883, False),
    "mqtts": (8883, True),
    "ssl": (8883, True),
}


class Channel(IntEnum):
    """Physical relay outputs of the board."""

    CHIME = 1
    OPENER = 2

    @property
    def slug(self) -> str:
        return self.name.lower()

    @property
    def default_duration(self) -> int:
        """Pulse length in ms used when an MQTT payload carries no usable duration."""
        if self is Channel.CHIME:
            return CHIME_DEFAULT_DURATION_MS
        return OPENER_DEFAULT_DURATION_MS

    @classmethod
    def from_id(cls, relay_id: int) -> Channel | None:
        try:
            return cls(relay_id)
        except ValueError:
            return None


class BrokerAddress(BaseModel):
    """Parsed MQTT_BROKER_URL."""

    hostname: str
    port: int
    tls: bool = False

    @classmethod
    def parse(cls, url: str) -> BrokerAddress:
        """Parse ``mqtt://host[:port]`` style URLs (``mqtts://`` enables TLS)."""
        if "://" not in url:
            url = f"mqtt://{url}"
        parts = urlsplit(url)
        scheme = parts.scheme.casefold()
        if scheme not in _MQTT_SCHEMES:
            raise ConfigError("MQTT_BROKER_URL", f"unsupported scheme '{parts.scheme}'")
        if not parts.hostname:
            raise ConfigError("MQTT_BROKER_URL", f"no host in '{url}'")
        default_port, tls = _MQTT_SCHEMES[scheme]
        try:
            port = parts.port or default_port
        except ValueError as e:
            raise ConfigError("MQTT_BROKER_URL", str(e)) from e
        return cls(hostname=parts.hostname, port=port, tls=tls)


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = parse_decimal(raw)
    if value is None:
        raise ConfigError(name, f"'{raw}' is not a plain decimal integer")
    if value <= 0:
        raise ConfigError(name, f"must be positive, got {value}")
    return value


def _notify_durations(environ: Mapping[str, str]) -> tuple[int, ...]:
    raw = environ.get("CHIME_NOTIFY_DURATIONS")
    if raw is None:
        return DEFAULT_NOTIFY_DURATIONS
    durations: list[int] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        value = parse_decimal(item)
        if value is None or not 0 < value <= PULSE_DURATION_MAX_MS:
            raise ConfigError(
                "CHIME_NOTIFY_DURATIONS",
                f"'{item}' is not an integer between 1 and {PULSE_DURATION_MAX_MS}",
            )
        if value not in durations:
            durations.append(value)
    return tuple(durations)


class CharonEnv(BaseModel):
    """Runtime configuration read from the environment."""

    broker: BrokerAddress
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    identifier: str = DEFAULT_IDENTIFIER
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    relay_port: str = DEFAULT_RELAY_PORT
    relay_baudrate: int = DEFAULT_RELAY_BAUDRATE
    notify_durations: tuple[int, ...] = DEFAULT_NOTIFY_DURATIONS
    reconnect_delay: int = DEFAULT_RECONNECT_DELAY
    debug: bool = False

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> CharonEnv:
        """Build the configuration, raising ConfigError for unusable settings."""
        if environ is None:
            environ = os.environ

        username = environ.get("MQTT_USERNAME") or None
        password = environ.get("MQTT_PASSWORD") or None
        if password and not username:
            raise ConfigError(
                "MQTT_PASSWORD",
                "MQTT_PASSWORD is set but MQTT_USERNAME is not. MQTT_USERNAME must be set if MQTT_PASSWORD is set.",
            )

        identifier = (environ.get("IDENTIFIER") or DEFAULT_IDENTIFIER).strip()
        if not identifier or "/" in identifier or "+" in identifier or "#" in identifier:
            raise ConfigError("IDENTIFIER", f"'{identifier}' cannot be used in an MQTT topic")

        return cls(
            broker=BrokerAddress.parse(environ.get("MQTT_BROKER_URL") or DEFAULT_BROKER_URL),
            mqtt_username=username,
            mqtt_password=password,
            identifier=identifier,
            http_host=environ.get("HTTP_HOST") or DEFAULT_HTTP_HOST,
            http_port=_positive_int(environ, "PORT", DEFAULT_HTTP_PORT),
            relay_port=environ.get("RELAY_PORT") or DEFAULT_RELAY_PORT,
            relay_baudrate=_positive_int(environ, "RELAY_BAUDRATE", DEFAULT_RELAY_BAUDRATE),
            notify_durations=_notify_durations(environ),
            reconnect_delay=_positive_int(environ, "MQTT_RECONNECT_DELAY", DEFAULT_RECONNECT_DELAY),
            debug=environ.get("CHARON_DEBUG", "0").casefold() in YES_ANSWER,
        )


class NotificationPublisherProtocol(Protocol):
    """What the HTTP surface needs from the MQTT side."""

    @property
    def is_connected(self) -> bool: ...

    async def publish_doorbell_event(self) -> bool: ...

    async def publish_chime_switch_state(self) -> bool: ...
