# Gateway Opcodes - Protocol Constants
# Opcodes, endpoints and fixed values of the real-time gateway protocol

"""
Opcodes Module

Responsibilities:
- Enumerate the gateway opcodes this client sends or consumes
- Hold the fixed protocol constants (endpoint, intents, suppressed events)
"""

from enum import IntEnum

GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"

# Minimal capability set: voice state events only
IDENTIFY_INTENTS = 128

IDENTIFY_PROPERTIES = {
    "os": "Windows",
    "browser": "Chrome",
    "device": "",
}

# Dropped before any processing, including sequence tracking
SUPPRESSED_EVENTS = frozenset({
    "CHANNEL_UNREAD_UPDATE",
    "CONVERSATION_SUMMARY_UPDATE",
    "SESSIONS_REPLACE",
})

PRESENCE_STATUSES = ("online", "idle", "dnd", "invisible", "offline")

class Opcode(IntEnum):
    """Gateway operation codes"""
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE_UPDATE = 3
    VOICE_STATE_UPDATE = 4
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11

class DispatchEvent:
    """Dispatch event names the state machine acts on"""
    READY = "READY"
    VOICE_STATE_UPDATE = "VOICE_STATE_UPDATE"
