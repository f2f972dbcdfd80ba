# Client Config - Validated Client Settings
# Built from the loaded config mapping; fails fast on a missing credential

"""
Client Config Module

Responsibilities:
- Hold the credential, voice target, mute/deaf flags, auto-reconnect and
  presence settings
- Validate at construction time (ConfigError)
- Convert the config mapping (seconds, nested sections) into typed values
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import ConfigError
from ..gateway.opcodes import GATEWAY_URL

@dataclass
class AutoReconnectConfig:
    """Displacement rejoin settings"""
    enabled: bool = False
    delay_ms: float = 1000
    max_retries: int = 9999

    def __post_init__(self):
        if isinstance(self.delay_ms, bool) or not isinstance(self.delay_ms, (int, float)) or self.delay_ms < 0:
            raise ConfigError(f"auto_reconnect.delay must be a non-negative number, got {self.delay_ms!r}")
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigError(f"auto_reconnect.max_retries must be a non-negative integer, got {self.max_retries!r}")

@dataclass
class ClientConfig:
    """Gateway client settings"""
    token: str
    server_id: Optional[str] = None
    channel_id: Optional[str] = None
    self_mute: bool = True
    self_deaf: bool = True
    auto_reconnect: AutoReconnectConfig = field(default_factory=AutoReconnectConfig)
    presence_status: Optional[str] = None
    gateway_url: str = GATEWAY_URL

    def __post_init__(self):
        if not isinstance(self.token, str) or not self.token.strip():
            raise ConfigError("token is required")
        # Snowflake ids arrive as strings on the wire
        self.server_id = _as_id(self.server_id)
        self.channel_id = _as_id(self.channel_id)
        if not self.gateway_url:
            raise ConfigError("gateway_url must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """
        Build config from a plain mapping
        
        Expected shape:
            {
                "token": "...",
                "server_id": "...", "channel_id": "...",
                "self_mute": true, "self_deaf": true,
                "auto_reconnect": {"enabled": false, "delay": 1, "max_retries": 9999},
                "presence": {"status": "invisible"},
                "gateway_url": "wss://..."
            }
        
        ``auto_reconnect.delay`` is in seconds.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")
        
        auto = data.get("auto_reconnect") or {}
        if not isinstance(auto, dict):
            raise ConfigError("auto_reconnect must be a mapping")
        delay_seconds = auto.get("delay", 1)
        if isinstance(delay_seconds, bool) or not isinstance(delay_seconds, (int, float)):
            raise ConfigError(f"auto_reconnect.delay must be a number, got {delay_seconds!r}")
        
        presence = data.get("presence") or {}
        status = presence.get("status") if isinstance(presence, dict) else None
        
        return cls(
            token=data.get("token", ""),
            server_id=data.get("server_id"),
            channel_id=data.get("channel_id"),
            self_mute=_as_bool(data.get("self_mute"), True),
            self_deaf=_as_bool(data.get("self_deaf"), True),
            auto_reconnect=AutoReconnectConfig(
                enabled=_as_bool(auto.get("enabled"), False),
                delay_ms=delay_seconds * 1000,
                max_retries=auto.get("max_retries", 9999),
            ),
            presence_status=status,
            gateway_url=data.get("gateway_url") or GATEWAY_URL,
        )

def _as_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)

def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return bool(value)
