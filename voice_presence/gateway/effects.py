# Effects - Side Effects Requested by the Protocol Layer
# The protocol layer never touches I/O; it returns these for the host to run

"""
Effects Module

Every protocol decision is expressed as a list of effects. The connection
manager executes them in order, which keeps the state machine testable
without a live transport.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

class TimerAction(Enum):
    """What a named timer does when it fires"""
    REJOIN = "rejoin"
    CLEAR_SUPPRESSION = "clear_suppression"
    RECONNECT = "reconnect"
    END_COOLDOWN = "end_cooldown"

class TimerName:
    """Timer slots; one pending timer per name"""
    REJOIN = "rejoin"
    SETTLE = "settle"
    RECONNECT = "reconnect"

@dataclass(frozen=True)
class SendFrame:
    payload: Dict[str, Any]

@dataclass(frozen=True)
class StartHeartbeat:
    interval_ms: float

@dataclass(frozen=True)
class StartTimer:
    name: str
    delay_ms: float
    action: TimerAction

@dataclass(frozen=True)
class CancelTimer:
    name: str

@dataclass(frozen=True)
class EmitEvent:
    name: str
    payload: Optional[Any] = None

@dataclass(frozen=True)
class CloseTransport:
    reason: str = ""

def debug(message: str) -> EmitEvent:
    """Shorthand for a debug event"""
    return EmitEvent("debug", message)
