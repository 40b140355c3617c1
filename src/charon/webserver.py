"""FastAPI application for direct (local) relay control."""

from __future__ import annotations

import asyncio
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, StrictInt, ValidationError

from charon.const import CHARON_VERSION, DOORBELL_CHIME_DURATION_MS, PULSE_DURATION_MAX_MS
from charon.correlation import correlation_context
from charon.exceptions import PulseError
from charon.logging_abstraction import get_logger
from charon.relay.controller import RelayController
from charon.structs import Channel, CharonEnv, NotificationPublisherProtocol
from charon.utils import parse_decimal

__all__ = ["PulseBody", "RelayApi", "WebServer", "create_app"]

logger = get_logger(__name__)

INVALID_REQUEST_MSG = "Invalid relay ID or duration"


class PulseBody(BaseModel):
    """JSON body of ``POST /relay/{id}/pulse``."""

    duration: StrictInt = Field(gt=0, le=PULSE_DURATION_MAX_MS)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_relay_id(relay_id: str) -> Channel | None:
    value = parse_decimal(relay_id)
    return Channel.from_id(value) if value is not None else None


def _parse_query_duration(duration: str | None) -> int | None:
    if duration is None:
        return None
    value = parse_decimal(duration)
    if value is None or not 0 < value <= PULSE_DURATION_MAX_MS:
        return None
    return value


class RelayApi:
    """HTTP handlers. Validation happens here, before the PulseEngine is called."""

    lp: str = "RelayApi:"

    def __init__(self, controller: RelayController, publisher: NotificationPublisherProtocol) -> None:
        self.controller: RelayController = controller
        self.publisher: NotificationPublisherProtocol = publisher

    async def index(self) -> PlainTextResponse:
        return PlainTextResponse("Welcome to the Relay Controller Web API")

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "version": CHARON_VERSION,
            "hardware": str(self.controller.hardware_state),
            "mqtt_connected": self.publisher.is_connected,
            "chime_enabled": self.controller.chime_enabled,
        }

    async def _pulse(self, channel: Channel, duration: int) -> JSONResponse:
        lp = f"{self.lp}pulse:"
        try:
            await self.controller.pulse(channel, duration)
        except PulseError as e:
            logger.error("%s Error pulsing relay %s: %s", lp, int(channel), e)
            return _error(500, "Failed to pulse the relay")
        return JSONResponse(
            status_code=200,
            content={"message": f"Relay {int(channel)} pulsed for {duration}ms"},
        )

    async def pulse_get(self, relay_id: str, duration: str | None = None) -> JSONResponse:
        """``GET /relay/{relay_id}/pulse?duration=N``"""
        with correlation_context():
            channel = _parse_relay_id(relay_id)
            value = _parse_query_duration(duration)
            if channel is None or value is None:
                logger.warning(
                    "%s Rejected pulse request",
                    self.lp,
                    extra={"relay_id": relay_id, "duration": duration},
                )
                return _error(400, INVALID_REQUEST_MSG)
            return await self._pulse(channel, value)

    async def pulse_post(self, relay_id: str, request: Request) -> JSONResponse:
        """``POST /relay/{relay_id}/pulse`` with body ``{"duration": N}``"""
        with correlation_context():
            channel = _parse_relay_id(relay_id)
            try:
                body = PulseBody.model_validate(await request.json())
            except (ValueError, RecursionError, ValidationError) as e:
                logger.warning("%s Rejected pulse body: %s", self.lp, e, extra={"relay_id": relay_id})
                return _error(400, INVALID_REQUEST_MSG)
            if channel is None:
                logger.warning("%s Rejected pulse request", self.lp, extra={"relay_id": relay_id})
                return _error(400, INVALID_REQUEST_MSG)
            return await self._pulse(channel, body.duration)

    async def doorbell(self) -> JSONResponse:
        """``POST /doorbell``: chime (if enabled), then always emit the doorbell event."""
        lp = f"{self.lp}doorbell:"
        with correlation_context():
            pulse_failed = False
            if self.controller.chime_enabled:
                try:
                    await self.controller.pulse(Channel.CHIME, DOORBELL_CHIME_DURATION_MS)
                except PulseError as e:
                    pulse_failed = True
                    logger.error("%s Error triggering doorbell chime: %s", lp, e)
            else:
                logger.info("%s Skipping chime as it is disabled", lp)

            _ = await self.publisher.publish_doorbell_event()

            if pulse_failed:
                return _error(500, "Failed to trigger doorbell event")
            return JSONResponse(status_code=200, content={"message": "Doorbell event triggered"})


def create_app(controller: RelayController, publisher: NotificationPublisherProtocol) -> FastAPI:
    """Build the FastAPI app bound to ``controller`` and ``publisher``."""
    api = RelayApi(controller, publisher)
    app = FastAPI(title="Charon", version=CHARON_VERSION)
    app.add_api_route("/", api.index, methods=["GET"], response_class=PlainTextResponse)
    app.add_api_route("/api/healthcheck", api.health_check, methods=["GET"])
    app.add_api_route("/relay/{relay_id}/pulse", api.pulse_get, methods=["GET"])
    app.add_api_route("/relay/{relay_id}/pulse", api.pulse_post, methods=["POST"])
    app.add_api_route("/doorbell", api.doorbell, methods=["POST"])
    app.state.api = api
    return app


class WebServer:
    """Runs the FastAPI app on uvicorn inside the service's event loop."""

    lp = "WebServer:"
    running: bool = False
    start_task: asyncio.Task[None] | None = None

    def __init__(self, env: CharonEnv, controller: RelayController, publisher: NotificationPublisherProtocol) -> None:
        self.host: str = env.http_host
        self.port: int = env.http_port
        self.app: FastAPI = create_app(controller, publisher)
        self.uvi_server = uvicorn.Server(
            config=uvicorn.Config(
                self.app,
                host=self.host,
                port=self.port,
                log_config={
                    "version": 1,
                    "disable_existing_loggers": False,
                },
                log_level="info",
            ),
        )

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        logger.info("%s Webserver listening on %s:%s", lp, self.host, self.port)
        self.running = True
        try:
            await self.uvi_server.serve()
        except asyncio.CancelledError:
            logger.info("%s Webserver stopped", lp)
            raise
        finally:
            self.running = False

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Stopping webserver...", lp)
        self.uvi_server.should_exit = True
        if self.start_task and not self.start_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self.start_task), timeout=5)
            except TimeoutError:
                logger.warning("%s Webserver did not stop in time, cancelling", lp)
                _ = self.start_task.cancel()
        self.running = False
