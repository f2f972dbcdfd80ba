# Session State - Gateway Session Data
# Plain data owned by the connection manager; no behavior beyond resets

"""
Session State Module

Holds everything the protocol layer reads and writes:
- Sequence number and heartbeat acknowledgment bookkeeping
- Identity and membership target (persist across reconnects)
- Connection generation used to invalidate stale timers
- Session validity and first-join flags
- Reconnect bookkeeping (attempts, suppression, pending timer)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class MembershipTarget:
    """Voice channel the client wants to sit in"""
    server_id: Optional[str] = None
    channel_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.server_id and self.channel_id)

    def matches(self, server_id: Optional[str], channel_id: Optional[str]) -> bool:
        return self.server_id == server_id and self.channel_id == channel_id

@dataclass
class ReconnectState:
    """Displacement rejoin bookkeeping"""
    attempt_count: int = 0
    suppressed: bool = False
    pending_timer: Optional[str] = None

@dataclass
class SessionState:
    """Mutable session data for one client"""
    identity_token: str
    membership_target: MembershipTarget = field(default_factory=MembershipTarget)
    sequence_number: Optional[int] = None
    self_user_id: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None
    connection_generation: int = 0
    session_valid: bool = True
    joined_once: bool = False
    last_heartbeat_ack_ms: Optional[float] = None
    reconnect: ReconnectState = field(default_factory=ReconnectState)

    def begin_generation(self) -> int:
        """Start a new connection generation and drop per-connection fields"""
        self.connection_generation += 1
        self.sequence_number = None
        self.last_heartbeat_ack_ms = None
        return self.connection_generation

    def clear_connection(self):
        """Teardown: forget everything tied to the closed transport"""
        self.sequence_number = None
        self.last_heartbeat_ack_ms = None
