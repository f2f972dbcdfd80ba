# Reconnect Policy - Retry Timing and Storm Prevention
# Single owner of every reconnect delay, attempt counter and suppression flag

"""
Reconnect Policy Module

Responsibilities:
- Displacement rejoin: bounded attempts, fixed delay, suppression while a
  rejoin is in flight
- Transport close: unbounded fixed-delay reconnect
- Invalid session: teardown plus a longer cooldown before reconnecting
- At most one pending timer per slot (starting a timer replaces its slot)

Transport-close and invalid-session reconnects are always retried. Only the
displacement path is bounded.
"""

from typing import List

from .effects import (
    CancelTimer,
    CloseTransport,
    EmitEvent,
    StartTimer,
    TimerAction,
    TimerName,
    debug,
)
from .session_state import SessionState
from ..errors import RejoinRetriesExhausted
from ..utils.logger import setup_logger

DEFAULT_REJOIN_DELAY_MS = 1000
DEFAULT_MAX_RETRIES = 9999
CLOSE_RECONNECT_DELAY_MS = 5000
INVALID_SESSION_COOLDOWN_MS = 10000
JOIN_SETTLE_DELAY_MS = 1000

class ReconnectPolicy:
    """
    Decides when and how the client retries
    
    Every method mutates the reconnect fields of SessionState and returns the
    effects the connection manager must run. Nothing here schedules anything
    by itself.
    """
    
    def __init__(
        self,
        enabled: bool = False,
        rejoin_delay_ms: float = DEFAULT_REJOIN_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        close_delay_ms: float = CLOSE_RECONNECT_DELAY_MS,
        invalid_session_cooldown_ms: float = INVALID_SESSION_COOLDOWN_MS,
        settle_delay_ms: float = JOIN_SETTLE_DELAY_MS
    ):
        """
        Initialize reconnect policy
        
        Args:
            enabled: Rejoin the target channel after a forced displacement
            rejoin_delay_ms: Delay before a displacement rejoin
            max_retries: Displacement rejoin attempts before giving up
            close_delay_ms: Delay before reconnecting after a transport close
            invalid_session_cooldown_ms: Cooldown after an invalid session
            settle_delay_ms: Time after a join request during which
                membership churn is attributed to our own request
        """
        self.enabled = enabled
        self.rejoin_delay_ms = rejoin_delay_ms
        self.max_retries = max_retries
        self.close_delay_ms = close_delay_ms
        self.invalid_session_cooldown_ms = invalid_session_cooldown_ms
        self.settle_delay_ms = settle_delay_ms
        self.logger = setup_logger("ReconnectPolicy", "INFO")
    
    # Displacement rejoin
    
    def on_displacement(self, state: SessionState) -> List:
        """
        Local user was moved or kicked out of the target channel
        
        Returns:
            Rejoin timer effects, a terminal signal, or nothing
        """
        if not self.enabled:
            return []
        
        reconnect = state.reconnect
        if reconnect.suppressed:
            self.logger.debug("Rejoin already in flight, ignoring membership update")
            return []
        
        if reconnect.attempt_count >= self.max_retries:
            self.logger.warning(
                f"Rejoin attempts exhausted ({reconnect.attempt_count}/{self.max_retries})"
            )
            return [
                debug("Max reconnect attempts reached. Stopping."),
                EmitEvent("error", RejoinRetriesExhausted(reconnect.attempt_count, self.max_retries)),
            ]
        
        reconnect.attempt_count += 1
        effects = []
        if reconnect.pending_timer:
            effects.append(CancelTimer(reconnect.pending_timer))
        reconnect.suppressed = True
        reconnect.pending_timer = TimerName.REJOIN
        effects.append(debug(
            f"Reconnecting... ({reconnect.attempt_count}/{self.max_retries})"
        ))
        effects.append(StartTimer(TimerName.REJOIN, self.rejoin_delay_ms, TimerAction.REJOIN))
        return effects
    
    def on_join_requested(self, state: SessionState) -> List:
        """A membership request went out; arm the settle timer"""
        if state.reconnect.pending_timer == TimerName.REJOIN:
            state.reconnect.pending_timer = None
        return [StartTimer(TimerName.SETTLE, self.settle_delay_ms, TimerAction.CLEAR_SUPPRESSION)]
    
    def clear_suppression(self, state: SessionState):
        """Settle delay elapsed"""
        state.reconnect.suppressed = False
    
    def on_rejoin_confirmed(self, state: SessionState) -> List:
        """Back in the target channel after a displacement"""
        if state.reconnect.attempt_count == 0:
            return []
        self.logger.info(
            f"Rejoined voice channel after {state.reconnect.attempt_count} attempt(s)"
        )
        state.reconnect.attempt_count = 0
        return [debug("Rejoined voice channel")]
    
    # Transport level
    
    def on_transport_closed(self, state: SessionState, manual: bool = False) -> List:
        """
        Transport closed; decide whether to reconnect
        
        Args:
            state: Session state
            manual: Close was caused by disconnect()
        """
        if manual:
            return [debug("Client disconnected. Automatic reconnect disabled.")]
        if not state.session_valid:
            return [debug("Session invalid. Will not reconnect until cooldown ends.")]
        return [
            debug(f"Disconnected. Reconnecting in {self.close_delay_ms / 1000:g}s..."),
            StartTimer(TimerName.RECONNECT, self.close_delay_ms, TimerAction.RECONNECT),
        ]
    
    def on_invalid_session(self, state: SessionState) -> List:
        """Server rejected the session; tear down and wait out the cooldown"""
        state.session_valid = False
        return [
            debug("Invalid session. Reconnecting..."),
            CloseTransport("invalid session"),
            StartTimer(
                TimerName.RECONNECT,
                self.invalid_session_cooldown_ms,
                TimerAction.END_COOLDOWN
            ),
        ]
    
    def end_cooldown(self, state: SessionState):
        """Invalid-session cooldown elapsed"""
        state.session_valid = True
    
    def on_teardown(self, state: SessionState) -> List:
        """
        Cancel work tied to the closing connection
        
        The RECONNECT slot is left alone: it is what starts the next
        connection.
        """
        state.reconnect.suppressed = False
        state.reconnect.pending_timer = None
        return [CancelTimer(TimerName.REJOIN), CancelTimer(TimerName.SETTLE)]
