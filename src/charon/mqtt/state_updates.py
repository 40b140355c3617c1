"""Outbound state and event messages: availability, chime switch state, doorbell events."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from charon.const import (
    AVAILABILITY_OFFLINE,
    AVAILABILITY_ONLINE,
    DOORBELL_EVENT_TYPE,
    SWITCH_OFF,
    SWITCH_ON,
)
from charon.logging_abstraction import get_logger

if TYPE_CHECKING:
    from charon.mqtt.client import MQTTClient

__all__ = ["StateUpdateHelper"]

logger = get_logger(__name__)


class StateUpdateHelper:
    """Fire-and-forget publishes; failures are logged, never raised."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client

    async def publish_availability(self, online: bool) -> bool:
        payload = AVAILABILITY_ONLINE if online else AVAILABILITY_OFFLINE
        return await self.client.publish(self.client.topics.availability, payload, retain=True)

    async def publish_chime_switch_state(self) -> bool:
        """Publish the chime-enabled toggle as a retained ON/OFF literal."""
        lp = f"{self.client.lp}chime_state:"
        state = SWITCH_ON if self.client.controller.chime_enabled else SWITCH_OFF
        ok = await self.client.publish(self.client.topics.chime_enabled_state, state.encode(), retain=True)
        if ok:
            logger.info("%s Published chime enabled state: %s", lp, state)
        else:
            logger.warning("%s Could not publish chime enabled state (%s)", lp, state)
        return ok

    async def publish_doorbell_event(self) -> bool:
        """Publish a non-retained doorbell_pressed event."""
        lp = f"{self.client.lp}doorbell:"
        payload = json.dumps({"event_type": DOORBELL_EVENT_TYPE}).encode()
        ok = await self.client.publish(self.client.topics.doorbell_event, payload, retain=False)
        if ok:
            logger.info("%s Published doorbell event", lp)
        else:
            logger.warning("%s Doorbell event was not delivered", lp)
        return ok
