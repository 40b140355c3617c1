"""MQTT client core for Charon.

Provides the MQTTClient class with connection lifecycle (connect,
announce, subscribe, receive, reconnect) and delegates discovery,
state publishing and command routing to helper modules.
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass

import aiomqtt

from charon.const import AVAILABILITY_OFFLINE, HASS_STATUS_TOPIC, HASS_TOPIC, TOPIC_PREFIX
from charon.exceptions import TransportError
from charon.logging_abstraction import get_logger
from charon.mqtt.command_routing import CommandRouter
from charon.mqtt.discovery import DiscoveryHelper
from charon.mqtt.state_updates import StateUpdateHelper
from charon.relay.controller import RelayController
from charon.structs import CharonEnv

__all__ = ["MQTTClient", "Topics"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class Topics:
    """Every topic the bridge subscribes or publishes to, for one device identifier."""

    identifier: str

    @property
    def base(self) -> str:
        return f"{TOPIC_PREFIX}/{self.identifier}"

    @property
    def chime_set(self) -> str:
        return f"{self.base}/chime/set"

    @property
    def opener_set(self) -> str:
        return f"{self.base}/opener/set"

    @property
    def chime_enabled_set(self) -> str:
        return f"{self.base}/chime/enabled/set"

    @property
    def chime_enabled_state(self) -> str:
        return f"{self.base}/chime/enabled/state"

    @property
    def doorbell_event(self) -> str:
        return f"{self.base}/doorbell/event"

    @property
    def availability(self) -> str:
        return f"{self.base}/availability"

    @property
    def hass_status(self) -> str:
        return f"{HASS_TOPIC}/{HASS_STATUS_TOPIC}"


class MQTTClient:
    """Connection to the broker plus the discovery / state / routing helpers."""

    lp: str = "mqtt:"
    start_task: asyncio.Task[None] | None = None

    def __init__(self, env: CharonEnv, controller: RelayController) -> None:
        self.env: CharonEnv = env
        self.controller: RelayController = controller
        self.identifier: str = env.identifier
        self.notify_durations: tuple[int, ...] = env.notify_durations
        self.topics: Topics = Topics(env.identifier)
        self.broker_client_id: str = f"charon_{env.identifier}_{secrets.token_hex(4)[:7]}"
        self.client: aiomqtt.Client | None = None
        self._connected: bool = False
        self._stopping: bool = False

        self.discovery: DiscoveryHelper = DiscoveryHelper(self)
        self.state_updates: StateUpdateHelper = StateUpdateHelper(self)
        self.command_router: CommandRouter = CommandRouter(self)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _build_client(self) -> aiomqtt.Client:
        broker = self.env.broker
        return aiomqtt.Client(
            hostname=broker.hostname,
            port=broker.port,
            username=self.env.mqtt_username,
            password=self.env.mqtt_password,
            identifier=self.broker_client_id,
            will=aiomqtt.Will(topic=self.topics.availability, payload=AVAILABILITY_OFFLINE, retain=True),
            tls_params=aiomqtt.TLSParameters() if broker.tls else None,
        )

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.env.broker.hostname, self.env.broker.port)
        self.client = self._build_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            # [code:134] Bad user name or password / [code:135] Not authorized
            if "code:134" in str(mqtt_err_exc) or "code:135" in str(mqtt_err_exc):
                logger.error(
                    "%s Broker rejected credentials, check MQTT_USERNAME / MQTT_PASSWORD (username: %s)",
                    lp,
                    self.env.mqtt_username,
                )
            else:
                logger.warning("%s Connection failed: %s", lp, mqtt_err_exc)
            self.client = None
            return False

        self._connected = True
        logger.info(
            "%s Connected to MQTT broker: %s port: %s",
            lp,
            self.env.broker.hostname,
            self.env.broker.port,
        )
        return True

    async def subscribe(self) -> None:
        assert self.client is not None, "client must be connected"
        for topic in self.command_router.subscriptions:
            await self.client.subscribe(topic, qos=0)
        logger.info("%s Subscribed to %s", self.lp, self.command_router.subscriptions)

    async def announce(self) -> None:
        """Publish availability, discovery configs and the chime switch state."""
        _ = await self.state_updates.publish_availability(True)
        _ = await self.discovery.publish_discovery()
        _ = await self.state_updates.publish_chime_switch_state()

    async def start(self) -> None:
        """Connect, announce, subscribe and receive; reconnect until stopped."""
        lp = f"{self.lp}start:"
        self._stopping = False
        while not self._stopping:
            if await self.connect():
                try:
                    await self.announce()
                    await self.subscribe()
                    await self.command_router.start_receiver_task()
                except aiomqtt.MqttError as msg_err:
                    logger.warning("%s MQTT connection lost: %s", lp, msg_err)
                finally:
                    await self._disconnect()
            if self._stopping:
                break
            logger.info(
                "%s sleeping for %s seconds before re-connecting to the MQTT broker...",
                lp,
                self.env.reconnect_delay,
            )
            await asyncio.sleep(self.env.reconnect_delay)

    async def _disconnect(self) -> None:
        self._connected = False
        client, self.client = self.client, None
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.debug("%s MQTT disconnect failed: %s", self.lp, ce)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        self._stopping = True
        if self._connected:
            _ = await self.state_updates.publish_availability(False)
        await self.command_router.drain()
        await self._disconnect()
        logger.info("%s Disconnected from MQTT broker", lp)
        if self.start_task and not self.start_task.done():
            logger.debug("%s FINISHING: Cancelling start task", lp)
            _ = self.start_task.cancel()

    async def _publish(self, topic: str, payload: bytes, retain: bool) -> None:
        if not self._connected or self.client is None:
            raise TransportError(topic, "not connected to broker")
        try:
            await self.client.publish(topic, payload, qos=0, retain=retain)
        except aiomqtt.MqttError as mqtt_err:
            self._connected = False
            raise TransportError(topic, str(mqtt_err)) from mqtt_err

    async def publish(self, topic: str, payload: bytes, retain: bool = False) -> bool:
        """Best-effort publish. Returns False (and logs) instead of raising."""
        lp = f"{self.lp}publish:"
        try:
            await self._publish(topic, payload, retain)
        except TransportError as e:
            logger.warning("%s %s", lp, e)
            return False
        return True

    # Delegation methods for the HTTP surface
    async def publish_doorbell_event(self) -> bool:
        return await self.state_updates.publish_doorbell_event()

    async def publish_chime_switch_state(self) -> bool:
        return await self.state_updates.publish_chime_switch_state()
