"""FastAPI fulfillment endpoint for Google smart home intents."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated, Any

import uvicorn
from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from mqtt_google_home.correlation import correlation_context
from mqtt_google_home.devices.traits import IntentType
from mqtt_google_home.events import CommandReceived
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.mqtt.commands import Command

if TYPE_CHECKING:
    from mqtt_google_home.devices.repository import DeviceRepository
    from mqtt_google_home.events import MessageHub
    from mqtt_google_home.state_cache import StateCache

__all__ = [
    "ErrorResponsePayload",
    "FulfillmentRequest",
    "FulfillmentServer",
    "create_app",
]

logger = get_logger(__name__)

DEVICE_NOT_FOUND = "deviceNotFound"
NOT_SUPPORTED = "notSupported"


class _FulfillmentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IntentInput(_FulfillmentModel):
    intent: str
    payload: dict[str, Any] = Field(default_factory=dict)


class FulfillmentRequest(_FulfillmentModel):
    request_id: str
    inputs: list[IntentInput] = Field(min_length=1)


class ErrorResponsePayload(_FulfillmentModel):
    error_code: str
    debug_string: str | None = None


class _QueryDevice(_FulfillmentModel):
    id: str
    custom_data: dict[str, Any] | None = None


class _QueryPayload(_FulfillmentModel):
    devices: list[_QueryDevice] = Field(default_factory=list)


class _ExecutePayload(_FulfillmentModel):
    commands: list[Command] = Field(default_factory=list)


def _error_payload(error_code: str, debug_string: str) -> dict[str, Any]:
    return ErrorResponsePayload(error_code=error_code, debug_string=debug_string).model_dump(
        by_alias=True,
        exclude_none=True,
    )


def create_app(
    repository: DeviceRepository,
    state_cache: StateCache,
    hub: MessageHub,
    agent_user_id: str,
    fulfillment_token: str | None = None,
) -> FastAPI:
    """Build the fulfillment app around explicitly passed components."""
    app = FastAPI()

    def _is_reachable(device_id: str) -> bool:
        device = repository.find(device_id)
        return device is not None and not device.disabled

    def _sync() -> dict[str, Any]:
        devices = [device.to_sync_payload() for device in repository.get_all() if not device.disabled]
        return {"agentUserId": agent_user_id, "devices": devices}

    def _query(payload: dict[str, Any]) -> dict[str, Any]:
        query = _QueryPayload.model_validate(payload)
        states: dict[str, Any] = {}
        for target in query.devices:
            device = repository.find(target.id)
            if device is None or device.disabled:
                states[target.id] = {"online": False, "status": "ERROR", "errorCode": DEVICE_NOT_FOUND}
            else:
                states[target.id] = {**device.get_google_state(state_cache), "status": "SUCCESS"}
        return {"devices": states}

    def _execute(payload: dict[str, Any]) -> dict[str, Any]:
        lp = "fulfillment:execute:"
        execute = _ExecutePayload.model_validate(payload)
        results: list[dict[str, Any]] = []
        for command in execute.commands:
            known = [target for target in command.devices if _is_reachable(target.id)]
            unknown = [target.id for target in command.devices if not _is_reachable(target.id)]
            if known:
                hub.publish(CommandReceived(command.model_copy(update={"devices": known})))
                results.append({"ids": [target.id for target in known], "status": "PENDING"})
            if unknown:
                logger.warning("%s unknown device ids %s", lp, unknown)
                results.append({"ids": unknown, "status": "ERROR", "errorCode": DEVICE_NOT_FOUND})
        return {"commands": results}

    @app.post("/google/home")
    async def fulfillment(
        request: FulfillmentRequest,
        authorization: Annotated[str | None, Header()] = None,
    ) -> dict[str, Any]:
        """Handle SYNC, QUERY, EXECUTE and DISCONNECT intents."""
        lp = "fulfillment:"
        if fulfillment_token and authorization != f"Bearer {fulfillment_token}":
            logger.warning("%s rejected request %s: bad bearer token", lp, request.request_id)
            raise HTTPException(status_code=401, detail="invalid token")

        with correlation_context(request.request_id):
            intent_input = request.inputs[0]
            logger.info("%s %s", lp, intent_input.intent, extra={"request_id": request.request_id})
            try:
                match intent_input.intent:
                    case IntentType.SYNC:
                        payload = _sync()
                    case IntentType.QUERY:
                        payload = _query(intent_input.payload)
                    case IntentType.EXECUTE:
                        payload = _execute(intent_input.payload)
                    case IntentType.DISCONNECT:
                        return {}
                    case _:
                        payload = _error_payload(NOT_SUPPORTED, f"intent {intent_input.intent} is not supported")
            except ValidationError as e:
                logger.warning("%s malformed %s payload: %s", lp, intent_input.intent, e)
                payload = _error_payload("protocolError", f"malformed {intent_input.intent} payload")
        return {"requestId": request.request_id, "payload": payload}

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Liveness check."""
        return {"status": "ok", "devices": len(repository)}

    return app


class FulfillmentServer:
    """uvicorn lifecycle around the fulfillment app."""

    lp = "FulfillmentServer:"

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self.app: FastAPI = app
        self.host: str = host
        self.port: int = port
        self.start_task: asyncio.Task[None] | None = None
        self.uvi_server = uvicorn.Server(
            config=uvicorn.Config(
                app,
                host=host,
                port=port,
                log_config={
                    "version": 1,
                    "disable_existing_loggers": False,
                },
                log_level="info",
            ),
        )

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        logger.info("%s Starting fulfillment server on %s:%s", lp, self.host, self.port)
        try:
            await self.uvi_server.serve()
        except asyncio.CancelledError:
            logger.info("%s fulfillment server stopped", lp)
            raise

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Stopping fulfillment server...", lp)
        self.uvi_server.should_exit = True
        if self.start_task and not self.start_task.done():
            try:
                _ = await asyncio.wait_for(self.start_task, timeout=5)
            except (TimeoutError, asyncio.CancelledError):
                logger.debug("%s FINISHING: start task did not exit cleanly", lp)
