"""
Server Client

WebSocket client for the world server. Speaks STOMP over the socket:
subscribes to the world-update topic, hands every snapshot body to a
callback, and publishes command text to the command destination.

Outbound commands are fire-and-forget: they go through a queue drained by a
sender task while connected, and are dropped (with a warning) while not.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import websockets

from . import logger as client_log
from .config import ServerSettings
from .errors import ClientConnectionError, ProtocolError
from .stomp import (
    SUBPROTOCOL,
    Frame,
    connect_frame,
    decode_frame,
    disconnect_frame,
    encode_frame,
    send_frame,
    subscribe_frame,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Client connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ServerClient:
    """
    STOMP-over-websocket client for the world server.

    Flow:
    1. Open the websocket and send CONNECT
    2. Wait for CONNECTED, then SUBSCRIBE to the world topic
    3. Deliver MESSAGE bodies to ``on_snapshot`` in arrival order
    4. Send queued commands as SEND frames
    5. Reconnect after a delay when the socket drops
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        on_snapshot: Optional[Callable[[str], Any]] = None,
        connector: Optional[Callable[..., Any]] = None,
    ):
        """Initialize server client.

        Args:
            settings: Server connection settings
            on_snapshot: Called with the JSON text of each world update
            connector: Coroutine function opening the websocket
                (``websockets.connect`` by default)
        """
        self.settings = settings or ServerSettings()
        self.on_snapshot = on_snapshot
        self._connect_ws = connector or websockets.connect

        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._running = False
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task] = None
        self._subscription_id = f"sub-{uuid.uuid4().hex[:8]}"

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if connected to server."""
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    async def connect(self) -> bool:
        """Connect and subscribe to the world topic.

        Returns:
            True if connected successfully
        """
        if self.is_connected:
            return True

        self._state = ConnectionState.CONNECTING
        client_log.log_connection("CONNECTING", self.settings.url)

        try:
            self._ws = await asyncio.wait_for(
                self._connect_ws(
                    self.settings.url,
                    subprotocols=[SUBPROTOCOL],
                    ping_interval=self.settings.heartbeat_interval,
                ),
                timeout=self.settings.connect_timeout,
            )
            await self._handshake()

            self._state = ConnectionState.CONNECTED
            self._reconnect_attempts = 0
            client_log.log_connection("CONNECTED", self.settings.url)
            return True

        except (OSError, asyncio.TimeoutError, websockets.WebSocketException, ClientConnectionError, ProtocolError) as e:
            logger.error(f"Failed to connect to server: {e}")
            await self._close_socket()
            self._state = ConnectionState.DISCONNECTED
            return False

    async def _handshake(self):
        """Exchange CONNECT/CONNECTED and subscribe."""
        host = urlparse(self.settings.url).hostname or "localhost"
        await self._send_frame(connect_frame(host))

        while True:
            raw = await asyncio.wait_for(self._ws.recv(), timeout=self.settings.connect_timeout)
            frame = decode_frame(raw)
            if frame is None:
                continue
            if frame.command == "CONNECTED":
                break
            if frame.command == "ERROR":
                raise ClientConnectionError(f"Server refused connection: {frame.header('message', frame.body)}")
            raise ProtocolError(f"Expected CONNECTED, got {frame.command}")

        await self._send_frame(subscribe_frame(self.settings.world_topic, self._subscription_id))

    async def disconnect(self):
        """Disconnect from server."""
        self._running = False
        if self._ws is not None and self._state == ConnectionState.CONNECTED:
            try:
                await self._send_frame(disconnect_frame(uuid.uuid4().hex[:8]))
            except websockets.ConnectionClosed:
                pass
        await self._stop_sender()
        await self._close_socket()
        self._state = ConnectionState.DISCONNECTED
        client_log.log_connection("DISCONNECTED", self.settings.url)

    async def _close_socket(self):
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def run(self):
        """Main run loop - connect and process messages."""
        self._running = True

        while self._running:
            # Connect if not connected
            if not self.is_connected:
                connected = await self.connect()
                if not connected:
                    self._reconnect_attempts += 1
                    if self._reconnect_attempts > self.settings.max_reconnect_attempts:
                        logger.error("Max reconnection attempts reached")
                        break
                    await asyncio.sleep(self.settings.reconnect_delay)
                    continue

            self._sender_task = asyncio.create_task(self._sender())

            # Process messages
            try:
                async for message in self._ws:
                    await self._handle_message(message)
                if self._running:
                    logger.warning("Server closed the connection")
            except websockets.ConnectionClosed as e:
                logger.warning(f"Connection closed: {e}")
            except Exception as e:
                client_log.log_exception("message loop", e)
                await self._close_socket()
                await asyncio.sleep(1)
            finally:
                await self._stop_sender()

            if self._running:
                self._state = ConnectionState.RECONNECTING
                client_log.log_connection("RECONNECTING", self.settings.url)
                self._ws = None

    def publish(self, text: str) -> bool:
        """Queue a command for the server.

        Returns:
            False if the command was dropped because the client is not connected
        """
        if not self.is_connected:
            logger.warning(f"Not connected, dropping command: {text}")
            return False
        self._outbox.put_nowait(text)
        return True

    async def _sender(self):
        while True:
            text = await self._outbox.get()
            await self._send_frame(send_frame(self.settings.command_destination, text))

    async def _stop_sender(self):
        if self._sender_task is not None:
            self._sender_task.cancel()
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass
            except websockets.ConnectionClosed as e:
                logger.warning(f"Sender stopped: {e}")
            self._sender_task = None

        dropped = 0
        while not self._outbox.empty():
            self._outbox.get_nowait()
            dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} unsent command(s)")

    async def _send_frame(self, frame: Frame):
        """Send a frame to the server."""
        if self._ws is None:
            raise ClientConnectionError("Not connected to server")

        await self._ws.send(encode_frame(frame))

    async def _handle_message(self, raw_message):
        """Handle an incoming websocket message."""
        try:
            frame = decode_frame(raw_message)
        except ProtocolError as e:
            logger.error(f"Invalid STOMP frame: {e}")
            return

        if frame is None:
            return

        if frame.command == "MESSAGE":
            if frame.header("subscription", self._subscription_id) != self._subscription_id:
                logger.debug(f"Ignoring message for subscription {frame.header('subscription')}")
                return
            if self.on_snapshot is None:
                return
            try:
                self.on_snapshot(frame.body)
            except Exception as e:
                logger.error(f"Error handling world update: {e}")
        elif frame.command == "ERROR":
            logger.error(f"Server error: {frame.header('message', '')} {frame.body}".strip())
        elif frame.command == "RECEIPT":
            logger.debug(f"Receipt {frame.header('receipt-id')}")
        else:
            logger.warning(f"Unexpected frame: {frame.command}")
