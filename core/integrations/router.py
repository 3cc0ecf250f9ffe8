"""
Platform Sync Message Router.

Maps every ``MessageType`` to exactly one orchestrator operation. The table
is checked for exhaustiveness at construction, so a new message type
without a handler fails at startup instead of at the first message.

Responses use one envelope: ``{"success": True, "data": ...}`` or
``{"success": False, "error": ..., "error_type": ...}``.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from core.errors import CallbackMalformed, SyncEngineError
from core.integrations.orchestrator import Orchestrator

logger = structlog.get_logger(__name__)


class MessageType(str, Enum):
    OAUTH_CONNECT = "OAUTH_CONNECT"
    OAUTH_CALLBACK = "OAUTH_CALLBACK"
    OAUTH_IMPLICIT_CALLBACK = "OAUTH_IMPLICIT_CALLBACK"
    OAUTH_EXTERNAL_TOKEN = "OAUTH_EXTERNAL_TOKEN"
    OAUTH_SYNC = "OAUTH_SYNC"
    OAUTH_GET_SYNC_INFO = "OAUTH_GET_SYNC_INFO"
    OAUTH_RESET_SYNC = "OAUTH_RESET_SYNC"


Handler = Callable[[dict[str, Any]], Awaitable[Any]]


def _required(message: dict[str, Any], field_name: str) -> Any:
    value = message.get(field_name)
    if not value:
        raise CallbackMalformed(f"Message is missing {field_name!r}", platform=message.get("platform"))
    return value


class OperationRouter:
    """Dispatches UI messages to the orchestrator."""

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator
        self._handlers: dict[MessageType, Handler] = {
            MessageType.OAUTH_CONNECT: self._connect,
            MessageType.OAUTH_CALLBACK: self._callback,
            MessageType.OAUTH_IMPLICIT_CALLBACK: self._implicit_callback,
            MessageType.OAUTH_EXTERNAL_TOKEN: self._external_token,
            MessageType.OAUTH_SYNC: self._sync,
            MessageType.OAUTH_GET_SYNC_INFO: self._status,
            MessageType.OAUTH_RESET_SYNC: self._reset,
        }
        missing = set(MessageType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for message types: {sorted(m.value for m in missing)}")

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        try:
            message_type = MessageType(message.get("type"))
        except ValueError:
            return {"success": False, "error": f"Unknown message type: {message.get('type')!r}",
                    "error_type": "UnknownMessageType"}

        try:
            data = await self._handlers[message_type](message)
        except SyncEngineError as exc:
            logger.warning("Operation failed", message_type=message_type.value,
                           platform=exc.platform, error=str(exc))
            return {"success": False, "error": exc.user_message, "detail": str(exc),
                    "error_type": type(exc).__name__}
        return {"success": True, "data": data}

    # --- Handlers ---

    async def _connect(self, message: dict[str, Any]) -> Any:
        result = await self.orchestrator.initiate(_required(message, "platform"))
        return result.to_dict()

    async def _callback(self, message: dict[str, Any]) -> Any:
        result = await self.orchestrator.handle_callback(
            _required(message, "platform"), _required(message, "code"), _required(message, "state"),
        )
        return result.to_dict()

    async def _implicit_callback(self, message: dict[str, Any]) -> Any:
        result = await self.orchestrator.handle_implicit_callback(
            _required(message, "platform"), _required(message, "accessToken"), _required(message, "state"),
        )
        return result.to_dict()

    async def _external_token(self, message: dict[str, Any]) -> Any:
        result = await self.orchestrator.handle_external_token(
            _required(message, "platform"),
            _required(message, "accessToken"),
            message.get("refreshToken"),
            message.get("expiresIn"),
        )
        return result.to_dict()

    async def _sync(self, message: dict[str, Any]) -> Any:
        result = await self.orchestrator.sync(_required(message, "platform"))
        return result.to_dict()

    async def _status(self, message: dict[str, Any]) -> Any:
        return await self.orchestrator.get_status(message.get("platform"))

    async def _reset(self, message: dict[str, Any]) -> Any:
        await self.orchestrator.reset(message.get("platform"))
        return None
