from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

import dotenv
import uvloop

from charon.const import CHARON_VERSION, HTTP_SERVER_START_TASK_NAME, MQTT_CLIENT_START_TASK_NAME
from charon.correlation import correlation_context
from charon.exceptions import ConfigError
from charon.logging_abstraction import configure_foreign_loggers, get_logger, set_global_level
from charon.mqtt.client import MQTTClient
from charon.relay.controller import RelayController
from charon.structs import CharonEnv
from charon.webserver import WebServer

logger = get_logger(__name__)


class CharonService:
    """Wires the RelayController to the MQTT client and the webserver."""

    lp: str = "CharonService:"

    def __init__(self, env: CharonEnv) -> None:
        self.env: CharonEnv = env
        self.controller: RelayController = RelayController.from_env(env)
        self.mqtt_client: MQTTClient = MQTTClient(env, self.controller)
        self.web_server: WebServer = WebServer(env, self.controller, self.mqtt_client)
        self._stop_event: asyncio.Event = asyncio.Event()
        self._stopped: bool = False

    def request_stop(self, signum: int | None = None) -> None:
        if signum is not None:
            logger.info("%s Received signal %s, shutting down...", self.lp, signal.Signals(signum).name)
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.request_stop, signum)
        logger.debug("%s Signal handlers configured for SIGINT & SIGTERM", self.lp)

    async def run(self) -> None:
        """Run both control surfaces until a stop is requested."""
        self._install_signal_handlers()
        logger.info(
            "%s Starting",
            self.lp,
            extra={"identifier": self.env.identifier, "http_port": self.env.http_port, "relay_port": self.env.relay_port},
        )
        self.mqtt_client.start_task = m_start = asyncio.create_task(
            self.mqtt_client.start(),
            name=MQTT_CLIENT_START_TASK_NAME,
        )
        self.web_server.start_task = w_start = asyncio.create_task(
            self.web_server.start(),
            name=HTTP_SERVER_START_TASK_NAME,
        )
        stop_waiter = asyncio.create_task(self._stop_event.wait())
        done, _ = await asyncio.wait({m_start, w_start, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in done - {stop_waiter}:
            if not task.cancelled() and task.exception() is not None:
                logger.error("%s %s failed: %r", self.lp, task.get_name(), task.exception())
        _ = stop_waiter.cancel()
        await self.stop()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.info("%s Shutting down...", self.lp)
        await self.web_server.stop()
        await self.mqtt_client.stop()
        await self.controller.close()
        logger.info("%s Shutdown complete", self.lp)


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Charon door chime / opener relay bridge")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    _ = parser.add_argument("--env", help="Path to an environment file", default=None, type=Path)
    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {CHARON_VERSION}")
    return parser.parse_args(argv)


def load_env_file(env_path: Path) -> bool:
    """Load ``env_path`` into ``os.environ`` (overriding). Returns True if anything was loaded."""
    env_path = env_path.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point for Charon."""
    configure_foreign_loggers()
    with correlation_context():
        logger.info("Starting Charon", extra={"version": CHARON_VERSION})
        args = parse_cli(argv)
        if args.env:
            _ = load_env_file(args.env)

        try:
            env = CharonEnv.from_environ()
        except ConfigError as e:
            logger.error("Fatal configuration error: %s", e)
            sys.exit(1)

        if args.debug or env.debug:
            set_global_level(logging.DEBUG)
            logger.info("Debug logging enabled")

        async def _run() -> None:
            await CharonService(env).run()

        try:
            uvloop.run(_run())
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        else:
            logger.info("Charon stopped gracefully")


if __name__ == "__main__":
    main()
