# Gateway Frames - JSON Decoding and Outbound Builders
# Inbound frame parsing and outbound payload construction

"""
Frames Module

Responsibilities:
- Parse raw gateway messages into GatewayFrame objects
- Handle malformed messages without raising
- Build the outbound heartbeat, identify, voice state and presence frames
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .opcodes import IDENTIFY_INTENTS, IDENTIFY_PROPERTIES, Opcode
from ..utils.logger import setup_logger

logger = setup_logger("GatewayFrames", "INFO")

@dataclass
class GatewayFrame:
    """Decoded inbound frame"""
    op: int
    t: Optional[str] = None
    s: Optional[int] = None
    d: Any = field(default_factory=dict)

def decode_frame(raw: Union[str, bytes, Dict[str, Any]]) -> Optional[GatewayFrame]:
    """
    Parse a raw gateway message
    
    Args:
        raw: JSON text (str or bytes) or an already decoded dict
        
    Returns:
        GatewayFrame if the message is well-formed, None otherwise
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode("utf-8", errors="replace")
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"JSON decode error: {e}")
            logger.debug(f"Raw message: {str(raw)[:100]}...")
            return None
    
    if not isinstance(data, dict):
        logger.error(f"Unexpected frame type: {type(data).__name__}")
        return None
    
    op = data.get("op")
    if isinstance(op, bool) or not isinstance(op, int):
        logger.error(f"Frame without integer opcode: {str(data)[:100]}")
        return None
    
    seq = data.get("s")
    if isinstance(seq, bool) or not isinstance(seq, int):
        seq = None
    
    payload = data.get("d")
    event = data.get("t")
    if not isinstance(event, str):
        event = None
    
    return GatewayFrame(
        op=op,
        t=event,
        s=seq,
        d=payload if payload is not None else {}
    )

def encode_frame(frame: Dict[str, Any]) -> str:
    """Serialize an outbound frame to JSON text"""
    return json.dumps(frame, separators=(",", ":"))

def heartbeat_frame(sequence_number: Optional[int]) -> Dict[str, Any]:
    """Heartbeat carrying the last observed sequence number (or null)"""
    return {"op": int(Opcode.HEARTBEAT), "d": sequence_number}

def identify_frame(token: str) -> Dict[str, Any]:
    """Identify request with the fixed minimal intents"""
    return {
        "op": int(Opcode.IDENTIFY),
        "d": {
            "token": token,
            "intents": IDENTIFY_INTENTS,
            "properties": dict(IDENTIFY_PROPERTIES),
        },
    }

def voice_state_frame(
    guild_id: str,
    channel_id: str,
    self_mute: bool,
    self_deaf: bool
) -> Dict[str, Any]:
    """Voice state update naming the target server and channel"""
    return {
        "op": int(Opcode.VOICE_STATE_UPDATE),
        "d": {
            "guild_id": guild_id,
            "channel_id": channel_id,
            "self_mute": self_mute,
            "self_deaf": self_deaf,
        },
    }

def presence_frame(status: str, since: int) -> Dict[str, Any]:
    """Presence update with no activities, marked afk"""
    return {
        "op": int(Opcode.PRESENCE_UPDATE),
        "d": {
            "status": status,
            "activities": [],
            "since": since,
            "afk": True,
        },
    }
