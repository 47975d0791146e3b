"""FastAPI gateway for the terminal relay.

Each WebSocket connection on the terminal route gets its own shell
process through the session manager:

    GET  /health          -> {"status": "ok", "strategy": "native-pty", ...}
    WS   /ws/terminal     binary frames in  -> process input (verbatim)
                          binary frames out <- process output (verbatim)
                          text frames in    -> {"type": "input", "data": "..."}
                                               {"type": "resize", "rows": 30, "cols": 80}
                                               anything else: raw keystroke text
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator, Callable, Literal, Union

import uvicorn
from fastapi import FastAPI, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from swivel.backends import BackendSelector, build_strategies
from swivel.config.settings import RelayConfig, Settings, load_settings
from swivel.domain.models import HealthStatus
from swivel.relay.sessions import (
    SessionClosedError,
    SessionManager,
    TerminalUnavailableError,
)
from swivel.utils.logging import setup_logging

logger = logging.getLogger(__name__)

IdentityResolver = Callable[[WebSocket], Union[str, None]]

UNAVAILABLE_NOTICE = b"\r\n[Server] Unable to start terminal session. Check server logs.\r\n"


# ---------------------------------------------------------------------------
# Control messages
# ---------------------------------------------------------------------------


class InputMessage(BaseModel):
    type: Literal["input"]
    data: str = Field(description="Keystroke text, sent to the shell as UTF-8")


class ResizeMessage(BaseModel):
    type: Literal["resize"]
    rows: int = Field(gt=0)
    cols: int = Field(gt=0)


ControlMessage = Annotated[Union[InputMessage, ResizeMessage], Field(discriminator="type")]

_control_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _native_disabled() -> bool:
    return False


def build_selector(config: RelayConfig) -> BackendSelector:
    """Selector whose probe honours ``disable_native_pty``."""
    return BackendSelector(probe=_native_disabled if config.disable_native_pty else None)


def build_manager(config: RelayConfig) -> SessionManager:
    return SessionManager(build_selector(config), build_strategies(config), config)


def create_app(
    settings: Settings | None = None,
    manager: SessionManager | None = None,
    identity_resolver: IdentityResolver | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Service settings; defaults are used when omitted.
        manager: Pre-built session manager (tests inject one). Built from
                 ``settings.relay`` at startup when omitted.
        identity_resolver: Returns the pre-validated identity of a
                 connecting client, or None. Authentication itself happens
                 upstream; this only consumes its result.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        m: SessionManager | None = app.state.manager
        if m is None:
            m = build_manager(settings.relay)
            app.state.manager = m
        strategy = m.selector.probe_native_capability()
        logger.info("Relay started (backend=%s)", strategy.value)
        yield
        # Shutdown
        m.shutdown()
        logger.info("Relay stopped")

    app = FastAPI(
        title="Swivel PTY engine",
        description="Realtime terminal-session relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.manager = manager
    app.state.identity_resolver = identity_resolver

    @app.get("/health")
    def health_check() -> HealthStatus:
        m: SessionManager | None = app.state.manager
        if m is None:
            return HealthStatus(status="starting")
        return m.health()

    @app.websocket(settings.server.ws_path)
    async def terminal_socket(websocket: WebSocket) -> None:
        resolver: IdentityResolver | None = app.state.identity_resolver
        try:
            identity = resolver(websocket) if resolver is not None else None
        except Exception:
            logger.exception("Identity resolver failed for %s", websocket.client)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        if settings.relay.require_identity and identity is None:
            logger.warning("Rejecting unidentified connection from %s", websocket.client)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await websocket.accept()
        await relay_connection(websocket, app.state.manager, identity=identity)

    return app


async def relay_connection(
    websocket: WebSocket,
    manager: SessionManager,
    identity: str | None = None,
) -> None:
    """Relay one accepted WebSocket to its own shell until either side ends."""
    connection_id = uuid.uuid4().hex
    outbound: asyncio.Queue[bytes] = asyncio.Queue()
    logger.info("Client connected: %s (identity=%s)", connection_id, identity)

    try:
        await manager.connect(connection_id, outbound.put_nowait, identity=identity)
    except TerminalUnavailableError as e:
        logger.error("Failed to spawn terminal for %s: %s", connection_id, e)
        await websocket.send_bytes(UNAVAILABLE_NOTICE)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    except SessionClosedError:
        logger.info("Connection %s closed before its shell started", connection_id)
        return

    sender = asyncio.create_task(_forward_output(websocket, outbound))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                manager.input(connection_id, message["bytes"])
            elif message.get("text") is not None:
                _dispatch_text(manager, connection_id, message["text"])
    finally:
        manager.teardown(connection_id)
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        logger.info("Client disconnected: %s", connection_id)


async def _forward_output(websocket: WebSocket, outbound: asyncio.Queue[bytes]) -> None:
    """Single writer per connection, so output order is the process's order."""
    while True:
        chunk = await outbound.get()
        await websocket.send_bytes(chunk)


def _dispatch_text(manager: SessionManager, connection_id: str, text: str) -> None:
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None

    if not isinstance(payload, dict) or "type" not in payload:
        manager.input(connection_id, text.encode("utf-8"))
        return

    try:
        message = _control_adapter.validate_python(payload)
    except ValidationError as e:
        logger.debug("Ignoring malformed control message on %s: %s", connection_id, e)
        return

    if isinstance(message, ResizeMessage):
        manager.resize(connection_id, message.rows, message.cols)
    else:
        manager.input(connection_id, message.data.encode("utf-8"))


def main() -> None:
    """Entry point for running the relay standalone.

    Loads settings the same way as ``swivel serve``: YAML, then the
    environment.
    """
    settings = load_settings()
    setup_logging(settings.logging)
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
