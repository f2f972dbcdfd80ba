# Protocol State Machine - Opcode Dispatch
# Turns inbound gateway frames into session updates and effects

"""
Protocol State Machine Module

Responsibilities:
- Drop suppressed events before any processing
- Track the last sequence number
- Hello: start heartbeat and identify
- Invalid session: delegate to the reconnect policy
- Dispatch: READY (profile, join, presence) and VOICE_STATE_UPDATE
- Run the protocol side of timer firings (rejoin, settle)

Unknown opcodes are ignored so newer servers do not break the client.
"""

from typing import Any, Callable, Dict, List, Optional

from .effects import (
    EmitEvent,
    SendFrame,
    StartHeartbeat,
    TimerAction,
    debug,
)
from .frames import GatewayFrame, identify_frame, presence_frame
from .membership import MembershipSynchronizer
from .opcodes import PRESENCE_STATUSES, SUPPRESSED_EVENTS, DispatchEvent, Opcode
from .reconnect_policy import ReconnectPolicy
from .session_state import SessionState
from ..utils.helpers import monotonic_ms, unix_seconds
from ..utils.logger import setup_logger

class ProtocolStateMachine:
    """
    Gateway protocol interpreter
    
    Mutates SessionState and returns effects; never performs I/O.
    """
    
    def __init__(
        self,
        state: SessionState,
        membership: MembershipSynchronizer,
        policy: ReconnectPolicy,
        presence_status: Optional[str] = None,
        clock: Callable[[], int] = unix_seconds,
        monotonic: Callable[[], float] = monotonic_ms
    ):
        self.state = state
        self.membership = membership
        self.policy = policy
        self.presence_status = presence_status
        self._clock = clock
        self._monotonic = monotonic
        self.logger = setup_logger("ProtocolStateMachine", "INFO")
        
        self._handlers = {
            Opcode.HELLO: self._on_hello,
            Opcode.HEARTBEAT_ACK: self._on_heartbeat_ack,
            Opcode.INVALID_SESSION: self._on_invalid_session,
            Opcode.DISPATCH: self._on_dispatch,
        }
    
    def handle_frame(self, frame: GatewayFrame) -> List:
        """
        Process one inbound frame
        
        Args:
            frame: Decoded gateway frame
            
        Returns:
            Effects for the connection manager to execute
        """
        if frame.t in SUPPRESSED_EVENTS:
            return []
        
        if frame.s is not None:
            self.state.sequence_number = frame.s
        
        handler = self._handlers.get(frame.op)
        if handler is None:
            self.logger.debug(f"Ignoring opcode {frame.op}")
            return []
        return handler(frame)
    
    def on_timer(self, action: TimerAction) -> List:
        """Protocol-side work for a fired timer"""
        if action == TimerAction.REJOIN:
            return self.membership.request_join(self.state)
        if action == TimerAction.CLEAR_SUPPRESSION:
            self.policy.clear_suppression(self.state)
            return []
        if action == TimerAction.END_COOLDOWN:
            self.policy.end_cooldown(self.state)
            return [debug("Invalid session cooldown finished")]
        return []
    
    def presence_effects(self) -> List:
        """Presence update for a recognized status, nothing otherwise"""
        status = (self.presence_status or "").lower()
        if status not in PRESENCE_STATUSES:
            return []
        return [
            SendFrame(presence_frame(status, self._clock() - 10)),
            debug(f"Status updated to {status}"),
        ]
    
    def _on_hello(self, frame: GatewayFrame) -> List:
        effects = [debug("Received Hello (op 10)")]
        interval = frame.d.get("heartbeat_interval") if isinstance(frame.d, dict) else None
        if isinstance(interval, (int, float)) and not isinstance(interval, bool) and interval > 0:
            effects.append(StartHeartbeat(interval))
        else:
            self.logger.warning(f"Hello without a usable heartbeat interval: {interval!r}")
        effects.append(SendFrame(identify_frame(self.state.identity_token)))
        effects.append(debug("Sending identify payload"))
        return effects
    
    def _on_heartbeat_ack(self, frame: GatewayFrame) -> List:
        # Observational only: a missing ack never triggers a reconnect
        self.state.last_heartbeat_ack_ms = self._monotonic()
        return [debug("Heartbeat acknowledged")]
    
    def _on_invalid_session(self, frame: GatewayFrame) -> List:
        return self.policy.on_invalid_session(self.state)
    
    def _on_dispatch(self, frame: GatewayFrame) -> List:
        if frame.t == DispatchEvent.READY:
            return self._on_ready(frame.d)
        if frame.t == DispatchEvent.VOICE_STATE_UPDATE:
            return self.membership.on_voice_state_update(self.state, frame.d)
        return []
    
    def _on_ready(self, data: Dict[str, Any]) -> List:
        user = data.get("user") if isinstance(data, dict) else None
        if not isinstance(user, dict):
            user = {}
        profile = {
            "id": user.get("id"),
            "username": user.get("username"),
            "discriminator": user.get("discriminator"),
        }
        self.state.self_user_id = profile["id"]
        self.state.profile = profile
        
        effects = [
            EmitEvent("ready", profile),
            debug(f"Logged in as {profile['username']}#{profile['discriminator']}"),
        ]
        effects.extend(self.membership.request_join(self.state))
        effects.extend(self.presence_effects())
        return effects
