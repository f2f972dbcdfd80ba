# WebSocket Client - Gateway Connection Management
# Owns the single gateway transport and runs protocol effects against it

"""
WebSocket Client Module

Responsibilities:
- Open at most one gateway transport at a time
- Receive loop: decode frames, run the protocol state machine, execute effects
- Teardown on close (heartbeat, per-connection timers, sequence number)
- Fixed-delay reconnect after close, cooldown reconnect after invalid session
- Manual disconnect that suppresses every automatic reconnect
- Event callbacks (connected, disconnected, ready, voice_ready, error, debug)
"""

import asyncio
import inspect
from collections import defaultdict
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosedOK

from .client_config import ClientConfig
from .heartbeat_manager import HeartbeatManager
from .timers import TimerRegistry
from ..gateway.effects import (
    CancelTimer,
    CloseTransport,
    EmitEvent,
    SendFrame,
    StartHeartbeat,
    StartTimer,
    TimerAction,
)
from ..gateway.frames import decode_frame, encode_frame
from ..gateway.membership import MembershipSynchronizer
from ..gateway.protocol import ProtocolStateMachine
from ..gateway.reconnect_policy import ReconnectPolicy
from ..gateway.session_state import MembershipTarget, SessionState
from ..utils.helpers import mask_token
from ..utils.logger import setup_logger

EVENTS = ("connected", "disconnected", "ready", "voice_ready", "error", "debug")

# Events whose callbacks receive an argument
_PAYLOAD_EVENTS = frozenset({"ready", "error", "debug"})

class ConnectionState(Enum):
    """Gateway connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"

async def open_websocket(url: str):
    """Default transport factory"""
    return await websockets.connect(
        url,
        ping_interval=None,  # Gateway heartbeat replaces websocket pings
        close_timeout=5,
        max_size=None
    )

class GatewayClient:
    """
    Keeps one account present in a voice channel

    Features:
    - Heartbeat at the server-specified interval
    - Rejoin after forced displacement (bounded, optional)
    - Reconnect after transport loss (always) and invalid session (cooldown)
    - Generation-tagged timers so nothing from an old connection fires late
    """

    def __init__(
        self,
        config: Union[ClientConfig, Dict[str, Any]],
        transport_factory: Optional[Callable] = None,
        reconnect_policy: Optional[ReconnectPolicy] = None
    ):
        """
        Initialize gateway client

        Args:
            config: ClientConfig or a mapping accepted by ClientConfig.from_dict
            transport_factory: Coroutine function url -> transport
                (defaults to websockets.connect)
            reconnect_policy: Override retry timing (defaults from config)

        Raises:
            ConfigError: Missing credential or malformed settings
        """
        if not isinstance(config, ClientConfig):
            config = ClientConfig.from_dict(config)
        self.config = config
        self._transport_factory = transport_factory or open_websocket

        self.state = SessionState(
            identity_token=config.token,
            membership_target=MembershipTarget(config.server_id, config.channel_id)
        )
        self.policy = reconnect_policy or ReconnectPolicy(
            enabled=config.auto_reconnect.enabled,
            rejoin_delay_ms=config.auto_reconnect.delay_ms,
            max_retries=config.auto_reconnect.max_retries
        )
        self.membership = MembershipSynchronizer(
            self.policy,
            self_mute=config.self_mute,
            self_deaf=config.self_deaf
        )
        self.protocol = ProtocolStateMachine(
            self.state,
            self.membership,
            self.policy,
            presence_status=config.presence_status
        )
        self.heartbeat = HeartbeatManager(
            self._send_heartbeat,
            lambda: self.state.sequence_number,
            lambda: self.state.connection_generation
        )
        self.timers = TimerRegistry(lambda: self.state.connection_generation)

        # Connection state
        self.connection = None
        self.connection_state = ConnectionState.DISCONNECTED
        self._should_reconnect = True
        self._closed_generation = 0
        self._receive_task: Optional[asyncio.Task] = None

        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

        self.logger = setup_logger("GatewayClient", "INFO")
        self.logger.debug(f"Client created for token {mask_token(config.token)}")

    # Lifecycle

    async def connect(self) -> bool:
        """
        Open the gateway transport

        No-op while a transport is open or being opened, and during an
        invalid-session cooldown.

        Returns:
            True if a transport was opened, False otherwise
        """
        if self.connection is not None or self.connection_state == ConnectionState.CONNECTING:
            self.logger.warning("Already connected")
            return False
        if not self.state.session_valid:
            self.logger.info("Session invalid, waiting for cooldown before connecting")
            return False

        self._should_reconnect = True

        # Nothing from the previous generation may outlive this point
        self.timers.cancel_all()
        self.heartbeat.stop()
        generation = self.state.begin_generation()

        self.connection_state = ConnectionState.CONNECTING
        self.logger.info(f"Connecting to {self.config.gateway_url} (generation {generation})...")

        try:
            connection = await self._transport_factory(self.config.gateway_url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Connection failed: {e}")
            if self.connection_state != ConnectionState.CLOSED:
                self.connection_state = ConnectionState.DISCONNECTED
            await self._emit("error", e)
            await self._after_close(generation)
            return False

        if not self._should_reconnect or generation != self.state.connection_generation:
            # disconnect() ran while the transport was opening
            await self._close_quietly(connection)
            return False

        self.connection = connection
        self.connection_state = ConnectionState.CONNECTED
        self._receive_task = asyncio.create_task(self._receive_loop(connection, generation))

        await self._emit("connected")
        await self._emit("debug", "Connected to Discord Gateway")
        return True

    async def disconnect(self):
        """
        Tear everything down and stop reconnecting

        Cancels every timer, the heartbeat and the receive loop, closes the
        transport. A close event arriving afterwards is ignored.
        """
        self.logger.info("Disconnecting...")
        self._should_reconnect = False
        was_connected = self.connection is not None

        self.timers.cancel_all()
        self.heartbeat.stop()
        # The cooldown timer is gone, so there is no cooldown left to wait out
        self.state.session_valid = True
        self._closed_generation = self.state.connection_generation

        task, self._receive_task = self._receive_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass

        connection = self.connection
        await self._teardown()
        if connection is not None:
            await self._close_quietly(connection)

        self.connection_state = ConnectionState.CLOSED
        if was_connected:
            await self._emit("disconnected")
        await self._emit("debug", "Client manually disconnected")
        self.logger.info("✅ Disconnected")

    async def send_frame(self, frame: Dict[str, Any]) -> bool:
        """
        Send one frame on the current transport

        Returns:
            True if sent, False if no transport is open or the send failed
        """
        connection = self.connection
        if connection is None:
            self.logger.debug(f"Cannot send op {frame.get('op')}: not connected")
            return False

        try:
            await connection.send(encode_frame(frame))
            return True
        except Exception as e:
            self.logger.error(f"Failed to send op {frame.get('op')}: {e}")
            return False

    # Receive side

    async def _receive_loop(self, connection, generation: int):
        """Background task reading frames until the transport closes"""
        error = None
        try:
            async for message in connection:
                frame = decode_frame(message)
                if frame is None:
                    continue
                await self._apply(self.protocol.handle_frame(frame), generation)
                if connection is not self.connection:
                    break
        except asyncio.CancelledError:
            self.logger.debug("Receive loop cancelled")
            raise
        except ConnectionClosedOK:
            pass
        except Exception as e:
            error = e

        if error is not None:
            self.logger.warning(f"Transport error: {error}")
            await self._emit("error", error)
        await self._handle_close(generation)

    async def _handle_close(self, generation: int):
        """Transport closed; runs once per generation"""
        if generation != self.state.connection_generation or generation == self._closed_generation:
            return
        self._closed_generation = generation

        self.connection_state = ConnectionState.DISCONNECTED
        connection = self.connection
        await self._teardown()
        if connection is not None:
            # Loop ended on an error while the socket is still up
            await self._close_quietly(connection)
        await self._emit("disconnected")
        await self._after_close(generation)

    async def _after_close(self, generation: int):
        effects = self.policy.on_transport_closed(
            self.state,
            manual=not self._should_reconnect
        )
        if any(isinstance(effect, StartTimer) for effect in effects):
            self.connection_state = ConnectionState.RECONNECTING
        await self._apply(effects, generation)

    async def _teardown(self):
        """Stop per-connection work and forget the transport"""
        self.heartbeat.stop()
        for effect in self.policy.on_teardown(self.state):
            await self._apply_one(effect, self.state.connection_generation)
        self.state.clear_connection()
        self.connection = None

    # Effects

    async def _apply(self, effects: List, generation: int):
        for effect in effects:
            if generation != self.state.connection_generation:
                self.logger.debug(f"Dropping effects from stale generation {generation}")
                return
            if self.connection_state == ConnectionState.CLOSED:
                return
            await self._apply_one(effect, generation)

    async def _apply_one(self, effect, generation: int):
        if isinstance(effect, SendFrame):
            await self.send_frame(effect.payload)
        elif isinstance(effect, StartHeartbeat):
            self.heartbeat.start(effect.interval_ms, generation)
        elif isinstance(effect, StartTimer):
            self.timers.start(
                effect.name,
                effect.delay_ms,
                partial(self._on_timer, effect.action, generation),
                generation
            )
        elif isinstance(effect, CancelTimer):
            self.timers.cancel(effect.name)
        elif isinstance(effect, EmitEvent):
            await self._emit(effect.name, effect.payload)
        elif isinstance(effect, CloseTransport):
            await self._close_transport(effect.reason)
        else:
            self.logger.warning(f"Unknown effect: {effect!r}")

    async def _on_timer(self, action: TimerAction, generation: int):
        await self._apply(self.protocol.on_timer(action), generation)
        if action in (TimerAction.RECONNECT, TimerAction.END_COOLDOWN):
            if self._should_reconnect:
                await self.connect()

    async def _close_transport(self, reason: str):
        """Forcibly close the current transport and tear down"""
        connection = self.connection
        self.logger.info(f"Closing transport: {reason}")
        await self._teardown()
        if connection is not None:
            await self._close_quietly(connection)

    async def _close_quietly(self, connection):
        try:
            await asyncio.wait_for(connection.close(), timeout=5.0)
        except asyncio.TimeoutError:
            self.logger.warning("Connection close timeout - forcing")
        except Exception as e:
            self.logger.warning(f"Error closing connection: {e}")

    async def _send_heartbeat(self, frame: Dict[str, Any]) -> bool:
        sent = await self.send_frame(frame)
        if sent:
            await self._emit("debug", "Sending heartbeat")
        return sent

    # Events

    async def _emit(self, event: str, payload: Any = None):
        if event == "debug":
            self.logger.debug(payload)
        elif event == "error":
            self.logger.error(f"Gateway error: {payload}")

        for callback in list(self._listeners.get(event, ())):
            try:
                if event in _PAYLOAD_EVENTS:
                    result = callback(payload)
                else:
                    result = callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Listener for '{event}' failed: {e}")

    def on(self, event: str, callback: Callable):
        """
        Register an event callback

        Args:
            event: One of connected, disconnected, ready, voice_ready, error, debug
            callback: Function or coroutine function
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}', expected one of {EVENTS}")
        self._listeners[event].append(callback)
        return callback

    def on_connect(self, callback: Callable):
        """Set on_connect callback"""
        return self.on("connected", callback)

    def on_disconnect(self, callback: Callable):
        """Set on_disconnect callback"""
        return self.on("disconnected", callback)

    def on_ready(self, callback: Callable):
        """Set on_ready callback (receives the profile dict)"""
        return self.on("ready", callback)

    def on_voice_ready(self, callback: Callable):
        """Set on_voice_ready callback"""
        return self.on("voice_ready", callback)

    def on_error(self, callback: Callable):
        """Set on_error callback"""
        return self.on("error", callback)

    def on_debug(self, callback: Callable):
        """Set on_debug callback"""
        return self.on("debug", callback)

    # State

    def is_connected(self) -> bool:
        return self.connection is not None and self.connection_state == ConnectionState.CONNECTED

    def get_state(self) -> ConnectionState:
        return self.connection_state
