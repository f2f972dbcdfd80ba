# Membership Synchronizer - Voice Channel Presence
# Requests membership and tells first join apart from forced displacement

"""
Membership Synchronizer Module

Responsibilities:
- Send the voice state update that puts the client in the target channel
- Detect the first confirmed join (voice_ready)
- Detect displacement and hand it to the reconnect policy
"""

from typing import Any, Dict, List

from .effects import EmitEvent, SendFrame, debug
from .frames import voice_state_frame
from .reconnect_policy import ReconnectPolicy
from .session_state import SessionState

class MembershipSynchronizer:
    """Keeps the local user in the configured voice channel"""
    
    def __init__(self, policy: ReconnectPolicy, self_mute: bool = True, self_deaf: bool = True):
        self.policy = policy
        self.self_mute = self_mute
        self.self_deaf = self_deaf
    
    def request_join(self, state: SessionState) -> List:
        """
        Build a membership request for the target channel
        
        Returns:
            Send effect plus the settle timer, or only a debug signal when
            no target is configured
        """
        target = state.membership_target
        if not target.is_configured:
            return [debug("No voice channel configured, skipping join")]
        
        frame = voice_state_frame(
            target.server_id,
            target.channel_id,
            self.self_mute,
            self.self_deaf
        )
        effects = [SendFrame(frame), debug("Sent voice channel join request")]
        effects.extend(self.policy.on_join_requested(state))
        return effects
    
    def on_voice_state_update(self, state: SessionState, data: Dict[str, Any]) -> List:
        """
        Interpret a VOICE_STATE_UPDATE dispatch
        
        Only updates about the local user matter. A match with the target is
        the first join (once) or a confirmed rejoin; anything else is a
        displacement.
        """
        if not isinstance(data, dict):
            return []
        if state.self_user_id is None or data.get("user_id") != state.self_user_id:
            return []
        
        target = state.membership_target
        if not target.is_configured:
            return []
        
        if target.matches(data.get("guild_id"), data.get("channel_id")):
            if not state.joined_once:
                state.joined_once = True
                return [EmitEvent("voice_ready"), debug("Successfully joined voice channel")]
            return self.policy.on_rejoin_confirmed(state)
        
        return self.policy.on_displacement(state)
