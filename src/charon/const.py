from charon import __version__

__all__ = [
    "AVAILABILITY_OFFLINE",
    "AVAILABILITY_ONLINE",
    "CHARON_MANUFACTURER",
    "CHARON_MODEL",
    "CHARON_VERSION",
    "CHIME_DEFAULT_DURATION_MS",
    "DEFAULT_BROKER_URL",
    "DEFAULT_HTTP_HOST",
    "DEFAULT_HTTP_PORT",
    "DEFAULT_IDENTIFIER",
    "DEFAULT_NOTIFY_DURATIONS",
    "DEFAULT_RECONNECT_DELAY",
    "DEFAULT_RELAY_BAUDRATE",
    "DEFAULT_RELAY_PORT",
    "DOORBELL_CHIME_DURATION_MS",
    "DOORBELL_EVENT_TYPE",
    "HASS_BIRTH_MSG",
    "HASS_STATUS_TOPIC",
    "HASS_TOPIC",
    "HASS_WILL_MSG",
    "HTTP_SERVER_START_TASK_NAME",
    "MQTT_CLIENT_START_TASK_NAME",
    "OPENER_DEFAULT_DURATION_MS",
    "ORIGIN_STRUCT",
    "PULSE_DURATION_MAX_MS",
    "SWITCH_OFF",
    "SWITCH_ON",
    "TOPIC_PREFIX",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on", "o")

CHARON_VERSION: str = __version__
CHARON_MANUFACTURER: str = "Generic"
CHARON_MODEL: str = "Charon"

TOPIC_PREFIX: str = "charon"
HASS_TOPIC: str = "homeassistant"
HASS_STATUS_TOPIC: str = "status"
HASS_BIRTH_MSG: str = "online"
HASS_WILL_MSG: str = "offline"

AVAILABILITY_ONLINE: bytes = b"online"
AVAILABILITY_OFFLINE: bytes = b"offline"
SWITCH_ON: str = "ON"
SWITCH_OFF: str = "OFF"
DOORBELL_EVENT_TYPE: str = "doorbell_pressed"

# milliseconds
CHIME_DEFAULT_DURATION_MS: int = 100
OPENER_DEFAULT_DURATION_MS: int = 3000
DOORBELL_CHIME_DURATION_MS: int = 100
PULSE_DURATION_MAX_MS: int = 3_600_000

DEFAULT_BROKER_URL: str = "mqtt://homeassistant.local:1883"
DEFAULT_IDENTIFIER: str = "asdf"
DEFAULT_HTTP_HOST: str = "0.0.0.0"
DEFAULT_HTTP_PORT: int = 3000
DEFAULT_RELAY_PORT: str = "/dev/ttyUSB0"
DEFAULT_RELAY_BAUDRATE: int = 9600
DEFAULT_NOTIFY_DURATIONS: tuple[int, ...] = (500, 1000)
DEFAULT_RECONNECT_DELAY: int = 5

MQTT_CLIENT_START_TASK_NAME = "MQTTClient_START"
HTTP_SERVER_START_TASK_NAME = "WebServer_START"

ORIGIN_STRUCT = {
    "name": "charon",
    "sw_version": CHARON_VERSION,
}
