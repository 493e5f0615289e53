"""
FastAPI WebSocket server that binds a UI to the conversation engine.
Pushes state, turns, interim text and notices to every connected client
and forwards client commands (typed text, quick actions, mic control)
to the controller.
"""

import logging
from typing import Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

from ..config import ServerConfig
from ..conversation.controller import ConversationController
from ..event_bus import Event, EventBus, EventType
from .protocol import ClientMessage, ClientMessageType, ServerMessage, ServerMessageType

logger = logging.getLogger(__name__)


class WebSocketServer:
    """
    FastAPI-based WebSocket server that mirrors the conversation to
    connected web clients.
    """

    def __init__(self, config: ServerConfig, event_bus: EventBus, controller: ConversationController):
        self.config = config
        self.bus = event_bus
        self.controller = controller
        self.app = FastAPI(title="Voice FAQ Assistant", docs_url=None)
        self._active_connections: Set[WebSocket] = set()

        self._setup_routes()

        # Subscribe to conversation events
        self.bus.subscribe(EventType.STATE_CHANGED, self._handle_state)
        self.bus.subscribe(EventType.TURN_APPENDED, self._handle_turn)
        self.bus.subscribe(EventType.INTERIM_TRANSCRIPT, self._handle_interim)
        self.bus.subscribe(EventType.NOTICE, self._handle_notice)

    def _setup_routes(self):
        """Configure FastAPI routes."""

        @self.app.get("/")
        async def index():
            return HTMLResponse(
                "<h1>Voice FAQ Assistant</h1><p>Connect a widget to <code>/ws</code>.</p>"
            )

        @self.app.get("/health")
        async def health():
            return {
                "status": "ok",
                "state": self.controller.state.value,
                "connections": len(self._active_connections),
            }

        @self.app.get("/transcript")
        async def transcript():
            return {"turns": [turn.to_dict() for turn in self.controller.transcript]}

        @self.app.get("/quick-actions")
        async def quick_actions():
            return {"quick_actions": list(self.controller.quick_actions)}

        @self.app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            await websocket.accept()
            await self.serve_client(websocket)

    async def serve_client(self, websocket: WebSocket):
        """Sync an accepted client, then relay its frames until it goes away."""
        # Sync transcript and current state to the new client
        await websocket.send_text(self._snapshot().to_json())

        self._active_connections.add(websocket)
        logger.info("Client connected. Total: %d", len(self._active_connections))
        try:
            while True:
                raw = await websocket.receive_text()
                reply = await self.handle_client_message(raw)
                if reply is not None:
                    await websocket.send_text(reply.to_json())
        except WebSocketDisconnect:
            pass
        finally:
            self._active_connections.discard(websocket)
            logger.info("Client disconnected. Total: %d", len(self._active_connections))

    def _snapshot(self) -> ServerMessage:
        return ServerMessage.sync(
            state=self.controller.state.value,
            transcript=[turn.to_dict() for turn in self.controller.transcript],
            partial=self.controller.partial_transcript,
            quick_actions=self.controller.quick_actions,
        )

    async def handle_client_message(self, raw: str):
        """
        Dispatch one client frame to the controller.
        Returns an error message for the sender, or None on success.
        """
        try:
            message = ClientMessage.from_json(raw)
        except ValueError as exc:
            logger.warning("Rejected client message: %s", exc)
            return ServerMessage.error(str(exc))

        if message.type is ClientMessageType.SUBMIT_TEXT:
            text = message.payload.get("text")
            if not isinstance(text, str):
                return ServerMessage.error("submit_text needs a 'text' string")
            await self.controller.submit_text(text)
        elif message.type is ClientMessageType.QUICK_ACTION:
            index = message.payload.get("index")
            if not isinstance(index, int) or isinstance(index, bool):
                return ServerMessage.error("quick_action needs an integer 'index'")
            if not await self.controller.submit_quick_action(index):
                return ServerMessage.error(f"Quick action {index} was not accepted")
        elif message.type is ClientMessageType.START_LISTENING:
            await self.controller.start_listening()
        elif message.type is ClientMessageType.STOP_LISTENING:
            await self.controller.stop_listening()
        elif message.type is ClientMessageType.INTERRUPT:
            await self.controller.interrupt()
        return None

    async def _broadcast(self, message: ServerMessage):
        """Send a message to all connected clients."""
        if not self._active_connections:
            return
        text = message.to_json()
        disconnected = set()
        for ws in list(self._active_connections):
            try:
                await ws.send_text(text)
            except Exception:
                disconnected.add(ws)
        self._active_connections -= disconnected

    async def _handle_state(self, event: Event):
        await self._broadcast(ServerMessage(ServerMessageType.STATE, {
            "state": event.data["state"].value,
            "previous": event.data["previous"].value,
        }))

    async def _handle_turn(self, event: Event):
        await self._broadcast(ServerMessage(ServerMessageType.TURN, event.data["turn"].to_dict()))

    async def _handle_interim(self, event: Event):
        await self._broadcast(ServerMessage(ServerMessageType.INTERIM, {"text": event.data["text"]}))

    async def _handle_notice(self, event: Event):
        await self._broadcast(ServerMessage(ServerMessageType.NOTICE, dict(event.data)))

    async def start(self):
        """Start the uvicorn server."""
        import uvicorn
        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="warning",
            access_log=False,
        )
        server = uvicorn.Server(config)
        logger.info(
            "WebSocket server starting on %s:%d",
            self.config.host, self.config.port
        )
        await server.serve()

    async def stop(self):
        """Close all connections."""
        for ws in self._active_connections.copy():
            try:
                await ws.close()
            except Exception:
                logger.debug("Closing client socket failed", exc_info=True)
        self._active_connections.clear()
        logger.info("WebSocket server stopped")
