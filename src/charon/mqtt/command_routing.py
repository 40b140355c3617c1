"""MQTT command routing.

Maps inbound messages on the command topics to relay pulses and chime
toggle changes. Malformed payloads never escape this module: they resolve
to a channel default (pulse topics) or are ignored (toggle topic), with a
warning in the log.
"""

from __future__ import annotations

import asyncio
import json
import random
from typing import TYPE_CHECKING, Any, cast

import aiomqtt

from charon.const import HASS_BIRTH_MSG, HASS_WILL_MSG, PULSE_DURATION_MAX_MS, SWITCH_OFF, SWITCH_ON
from charon.correlation import correlation_context
from charon.exceptions import PayloadError, PulseError
from charon.logging_abstraction import get_logger
from charon.structs import Channel
from charon.utils import parse_decimal

if TYPE_CHECKING:
    from charon.mqtt.client import MQTTClient

__all__ = ["CommandRouter", "parse_pulse_duration", "resolve_pulse_duration"]

logger = get_logger(__name__)


def _as_duration(value: object) -> int | None:
    # bool is an int subclass; true/false are not durations
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return parse_decimal(value)
    return None


def parse_pulse_duration(topic: str, payload: bytes) -> int:
    """Extract a positive duration (ms) from a pulse command payload.

    Accepts a bare decimal integer (``250``) or a JSON object with a ``duration``
    field (``{"duration": 250}``), tried in that order.

    Raises:
        PayloadError: no duration in 1..PULSE_DURATION_MAX_MS could be found

    """
    try:
        text = payload.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise PayloadError(topic, payload, "payload is not UTF-8") from e

    duration = parse_decimal(text)
    if duration is None:
        try:
            data: Any = json.loads(text)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError is a ValueError; so are over-long integer literals
            raise PayloadError(topic, payload, "neither an integer nor JSON") from e
        if not isinstance(data, dict):
            raise PayloadError(topic, payload, "JSON payload is not an object")
        duration = _as_duration(cast("dict[str, object]", data).get("duration"))
        if duration is None:
            raise PayloadError(topic, payload, "missing or non-integer 'duration'")

    if duration <= 0:
        raise PayloadError(topic, payload, f"duration must be positive, got {duration}")
    if duration > PULSE_DURATION_MAX_MS:
        raise PayloadError(topic, payload, f"duration exceeds {PULSE_DURATION_MAX_MS}ms")
    return duration


def resolve_pulse_duration(channel: Channel, topic: str, payload: bytes) -> int:
    """Parse the payload duration, falling back to the channel default."""
    lp = "CommandRouter:duration:"
    if not payload or payload.strip().lower() == b"press":
        return channel.default_duration
    try:
        return parse_pulse_duration(topic, payload)
    except PayloadError as e:
        logger.warning(
            "%s %s, using default duration of %sms",
            lp,
            e,
            channel.default_duration,
            extra={"payload": payload[:64]},
        )
        return channel.default_duration


class CommandRouter:
    """Routes MQTT messages to the RelayController."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client
        self.birth_delay_range: tuple[float, float] = (1.0, 5.0)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def subscriptions(self) -> list[str]:
        topics = self.client.topics
        return [topics.chime_set, topics.opener_set, topics.chime_enabled_set, topics.hass_status]

    async def handle_message(self, topic: str, payload: bytes) -> None:
        """Handle one inbound message. Never raises for bad payloads or hardware errors."""
        lp = f"{self.client.lp}rcv:"
        topics = self.client.topics
        logger.info(
            "%s >>> MQTT MESSAGE RECEIVED: topic=%s, payload=%s",
            lp,
            topic,
            payload[:64],
        )
        if topic == topics.chime_set:
            await self._handle_pulse(Channel.CHIME, topic, payload)
        elif topic == topics.opener_set:
            await self._handle_pulse(Channel.OPENER, topic, payload)
        elif topic == topics.chime_enabled_set:
            await self._handle_chime_enabled(topic, payload)
        elif topic == topics.hass_status:
            await self._handle_hass_status(payload)
        else:
            logger.warning("%s Unknown topic: %s => %s", lp, topic, payload[:64])

    async def _handle_pulse(self, channel: Channel, topic: str, payload: bytes) -> None:
        lp = f"{self.client.lp}{channel.slug}:"
        duration = resolve_pulse_duration(channel, topic, payload)
        try:
            await self.client.controller.pulse(channel, duration)
        except PulseError as e:
            logger.error("%s Failed to trigger %s: %s", lp, channel.slug, e)
        else:
            logger.info("%s %s triggered for %sms", lp, channel.slug.capitalize(), duration)

    async def _handle_chime_enabled(self, topic: str, payload: bytes) -> None:
        lp = f"{self.client.lp}chime_enabled:"
        try:
            literal = payload.decode("utf-8").strip().upper()
        except UnicodeDecodeError:
            literal = ""
        if literal not in (SWITCH_ON, SWITCH_OFF):
            error = PayloadError(topic, payload, f"expected {SWITCH_ON} or {SWITCH_OFF}")
            logger.warning("%s %s, ignoring", lp, error)
            return
        _ = self.client.controller.set_chime_enabled(literal == SWITCH_ON)
        _ = await self.client.publish_chime_switch_state()

    async def _handle_hass_status(self, payload: bytes) -> None:
        lp = f"{self.client.lp}hass_status:"
        status = payload.decode("utf-8", errors="replace").strip().casefold()
        if status == HASS_BIRTH_MSG:
            delay = random.uniform(*self.birth_delay_range)
            logger.info(
                "%s Home Assistant came online, re-announcing discovery and state in %.1f seconds...",
                lp,
                delay,
            )
            await asyncio.sleep(delay)
            await self.client.announce()
        elif status == HASS_WILL_MSG:
            logger.info("%s received Last Will msg from Home Assistant, HASS is offline!", lp)
        else:
            logger.warning("%s Unknown HASS status message: %s", lp, payload[:64])

    async def _dispatch(self, topic: str, payload: bytes) -> None:
        with correlation_context():
            try:
                await self.handle_message(topic, payload)
            except Exception:
                logger.exception("%s Unhandled error processing message on %s", self.client.lp, topic)

    def dispatch(self, message: aiomqtt.Message) -> asyncio.Task[None]:
        """Handle ``message`` in its own task so a long pulse never stalls the receiver."""
        payload = message.payload if isinstance(message.payload, bytes | bytearray) else str(message.payload or "").encode()
        task = asyncio.create_task(self._dispatch(message.topic.value, bytes(payload)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start_receiver_task(self) -> None:
        """Consume messages until the connection drops (raises ``aiomqtt.MqttError``)."""
        assert self.client.client is not None, "client must be connected"
        async for message in self.client.client.messages:
            _ = self.dispatch(message)

    async def drain(self) -> None:
        if self._tasks:
            _ = await asyncio.gather(*self._tasks, return_exceptions=True)
