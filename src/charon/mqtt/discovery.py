"""Home Assistant MQTT discovery for the chime / opener bridge.

Every control gets one retained config message. Payloads are built from
static data only and serialized with sorted keys, so publishing them again
on reconnect produces byte-identical messages.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from charon.const import (
    CHARON_MANUFACTURER,
    CHARON_MODEL,
    DOORBELL_EVENT_TYPE,
    HASS_TOPIC,
    ORIGIN_STRUCT,
    SWITCH_OFF,
    SWITCH_ON,
)
from charon.logging_abstraction import get_logger

if TYPE_CHECKING:
    from charon.mqtt.client import MQTTClient

__all__ = ["DiscoveryHelper", "encode_config"]

logger = get_logger(__name__)


def encode_config(payload: dict[str, object]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()


class DiscoveryHelper:
    """Builds and publishes the discovery config of every exposed entity."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client

    def _object_id(self, control: str) -> str:
        return f"charon_{self.client.identifier}_{control}"

    def device_struct(self) -> dict[str, object]:
        identifier = self.client.identifier
        return {
            "identifiers": [identifier],
            "manufacturer": CHARON_MANUFACTURER,
            "model": CHARON_MODEL,
            "name": f"Charon {identifier}",
        }

    def _entity(self, name: str, control: str, **fields: object) -> dict[str, object]:
        return {
            "name": name,
            "unique_id": self._object_id(control),
            "availability_topic": self.client.topics.availability,
            "device": self.device_struct(),
            "origin": dict(ORIGIN_STRUCT),
            **fields,
        }

    def build_configs(self) -> list[tuple[str, dict[str, object]]]:
        """Return ``(config topic, payload)`` for every entity, in publish order."""
        topics = self.client.topics
        configs: list[tuple[str, dict[str, object]]] = [
            (
                f"{HASS_TOPIC}/button/{self._object_id('chime')}/config",
                self._entity("Door Chime", "chime", command_topic=topics.chime_set, icon="mdi:bell-ring"),
            ),
            (
                f"{HASS_TOPIC}/button/{self._object_id('opener')}/config",
                self._entity("Door Opener", "opener", command_topic=topics.opener_set, icon="mdi:door-open"),
            ),
        ]
        for duration in self.client.notify_durations:
            control = f"chime_notify_{duration}"
            configs.append(
                (
                    f"{HASS_TOPIC}/button/{self._object_id(control)}/config",
                    self._entity(
                        f"Chime Notify {duration}ms",
                        control,
                        command_topic=topics.chime_set,
                        payload_press=json.dumps({"duration": duration}),
                        icon="mdi:bell-ring-outline",
                    ),
                ),
            )
        configs.append(
            (
                f"{HASS_TOPIC}/event/{self._object_id('doorbell')}/config",
                self._entity(
                    "Doorbell",
                    "doorbell",
                    state_topic=topics.doorbell_event,
                    event_types=[DOORBELL_EVENT_TYPE],
                    device_class="doorbell",
                ),
            ),
        )
        configs.append(
            (
                f"{HASS_TOPIC}/switch/{self._object_id('chime_enabled')}/config",
                self._entity(
                    "Chime Enabled",
                    "chime_enabled",
                    command_topic=topics.chime_enabled_set,
                    state_topic=topics.chime_enabled_state,
                    payload_on=SWITCH_ON,
                    payload_off=SWITCH_OFF,
                    state_on=SWITCH_ON,
                    state_off=SWITCH_OFF,
                    icon="mdi:bell-cog",
                ),
            ),
        )
        return configs

    async def publish_discovery(self) -> bool:
        """Publish every discovery config (retained). Returns True if all went out."""
        lp = f"{self.client.lp}hass:"
        if not self.client.is_connected:
            logger.debug("%s Not connected, skipping discovery", lp)
            return False

        published = 0
        configs = self.build_configs()
        for topic, payload in configs:
            if await self.client.publish(topic, encode_config(payload), retain=True):
                published += 1
            else:
                logger.warning("%s Failed to publish discovery config to %s", lp, topic)

        logger.info(
            "%s Published MQTT auto-discovery configuration",
            lp,
            extra={"published": published, "total": len(configs)},
        )
        return published == len(configs)
