"""
Unit tests for Home Assistant discovery and outbound state messages.
"""

import json

import pytest

from charon.mqtt.discovery import encode_config


def _published(mqtt_client) -> dict[str, tuple[bytes, bool]]:
    return {c.args[0]: (c.args[1], c.kwargs["retain"]) for c in mqtt_client.client.publish.await_args_list}


class TestBuildConfigs:
    """Tests for DiscoveryHelper.build_configs()"""

    def test_entity_topics(self, mqtt_client):
        """Test one config topic per control, including one per notify duration"""
        topics = [topic for topic, _ in mqtt_client.discovery.build_configs()]

        assert topics == [
            "homeassistant/button/charon_test_chime/config",
            "homeassistant/button/charon_test_opener/config",
            "homeassistant/button/charon_test_chime_notify_500/config",
            "homeassistant/button/charon_test_chime_notify_1000/config",
            "homeassistant/event/charon_test_doorbell/config",
            "homeassistant/switch/charon_test_chime_enabled/config",
        ]

    def test_every_entity_shares_device_and_availability(self, mqtt_client):
        """Test all entities point at the same device and availability topic"""
        for _, payload in mqtt_client.discovery.build_configs():
            assert payload["availability_topic"] == "charon/test/availability"
            assert payload["device"]["identifiers"] == ["test"]
            assert payload["origin"]["name"] == "charon"

    def test_notify_button_payload_press(self, mqtt_client):
        """Test notify buttons press the chime topic with a JSON duration"""
        configs = dict(mqtt_client.discovery.build_configs())
        notify = configs["homeassistant/button/charon_test_chime_notify_500/config"]

        assert notify["command_topic"] == "charon/test/chime/set"
        assert json.loads(notify["payload_press"]) == {"duration": 500}
        assert notify["name"] == "Chime Notify 500ms"

    def test_doorbell_event_and_switch(self, mqtt_client):
        """Test the doorbell event types and the chime switch topics"""
        configs = dict(mqtt_client.discovery.build_configs())
        event = configs["homeassistant/event/charon_test_doorbell/config"]
        switch = configs["homeassistant/switch/charon_test_chime_enabled/config"]

        assert event["event_types"] == ["doorbell_pressed"]
        assert event["state_topic"] == "charon/test/doorbell/event"
        assert switch["command_topic"] == "charon/test/chime/enabled/set"
        assert switch["state_topic"] == "charon/test/chime/enabled/state"
        assert (switch["payload_on"], switch["payload_off"]) == ("ON", "OFF")

    def test_no_notify_buttons_when_disabled(self, mqtt_client):
        """Test an empty notify list publishes no notify buttons"""
        mqtt_client.notify_durations = ()

        topics = [topic for topic, _ in mqtt_client.discovery.build_configs()]

        assert not any("chime_notify" in topic for topic in topics)

    def test_encode_config_is_canonical(self):
        """Test key order does not affect the encoded config"""
        assert encode_config({"b": 1, "a": [2]}) == encode_config({"a": [2], "b": 1}) == b'{"a":[2],"b":1}'


class TestPublishDiscovery:
    """Tests for DiscoveryHelper.publish_discovery()"""

    @pytest.mark.asyncio
    async def test_configs_are_retained(self, mqtt_client):
        """Test every config is published retained"""
        assert await mqtt_client.discovery.publish_discovery() is True

        published = _published(mqtt_client)
        assert len(published) == 6
        assert all(retain for _, retain in published.values())

    @pytest.mark.asyncio
    async def test_republish_is_byte_identical(self, mqtt_client):
        """Test a second announce produces the same bytes on the same topics"""
        _ = await mqtt_client.discovery.publish_discovery()
        first = _published(mqtt_client)
        mqtt_client.client.publish.reset_mock()
        mqtt_client.controller.chime_enabled = False

        _ = await mqtt_client.discovery.publish_discovery()

        assert _published(mqtt_client) == first

    @pytest.mark.asyncio
    async def test_skipped_when_disconnected(self, mqtt_client):
        """Test nothing is published while disconnected"""
        mqtt_client._connected = False

        assert await mqtt_client.discovery.publish_discovery() is False
        mqtt_client.client.publish.assert_not_awaited()


class TestStateUpdates:
    """Tests for StateUpdateHelper"""

    @pytest.mark.asyncio
    async def test_availability(self, mqtt_client):
        """Test availability is published retained as online/offline"""
        _ = await mqtt_client.state_updates.publish_availability(True)
        _ = await mqtt_client.state_updates.publish_availability(False)

        calls = [(c.args[0], c.args[1], c.kwargs["retain"]) for c in mqtt_client.client.publish.await_args_list]
        assert calls == [
            ("charon/test/availability", b"online", True),
            ("charon/test/availability", b"offline", True),
        ]

    @pytest.mark.asyncio
    async def test_chime_switch_state_follows_controller(self, mqtt_client):
        """Test the retained switch state mirrors chime_enabled"""
        mqtt_client.controller.chime_enabled = False

        assert await mqtt_client.publish_chime_switch_state() is True

        mqtt_client.client.publish.assert_awaited_once_with(
            "charon/test/chime/enabled/state",
            b"OFF",
            qos=0,
            retain=True,
        )

    @pytest.mark.asyncio
    async def test_doorbell_event_not_retained(self, mqtt_client):
        """Test the doorbell event is a non-retained doorbell_pressed message"""
        assert await mqtt_client.publish_doorbell_event() is True

        call = mqtt_client.client.publish.await_args
        assert call.args[0] == "charon/test/doorbell/event"
        assert json.loads(call.args[1]) == {"event_type": "doorbell_pressed"}
        assert call.kwargs["retain"] is False

    @pytest.mark.asyncio
    async def test_doorbell_event_while_disconnected(self, mqtt_client):
        """Test a doorbell event with no broker reports failure without raising"""
        mqtt_client._connected = False

        assert await mqtt_client.publish_doorbell_event() is False
        mqtt_client.client.publish.assert_not_awaited()
