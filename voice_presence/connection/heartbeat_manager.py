# Heartbeat Manager - Keep Session Alive
# Periodic heartbeat bound to one connection generation

"""
Heartbeat Manager Module

Responsibilities:
- Send a heartbeat (last sequence number or null) every interval
- Restart cleanly when started twice (previous loop is cancelled first)
- Stop silently once its generation is superseded

Acknowledgments are tracked by the protocol layer for observation only;
a missed ack does not trigger a reconnect.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from ..gateway.frames import heartbeat_frame
from ..utils.logger import setup_logger

class HeartbeatManager:
    """
    Manages the gateway heartbeat loop
    """
    
    def __init__(
        self,
        send: Callable[[Dict], Awaitable[bool]],
        sequence_getter: Callable[[], Optional[int]],
        generation_getter: Callable[[], int]
    ):
        """
        Initialize heartbeat manager
        
        Args:
            send: Coroutine function sending one outbound frame
            sequence_getter: Returns the last observed sequence number
            generation_getter: Returns the current connection generation
        """
        self._send = send
        self._sequence = sequence_getter
        self._generation = generation_getter
        self._task: Optional[asyncio.Task] = None
        self.interval_ms: Optional[float] = None
        self.generation: Optional[int] = None
        self.beats_sent = 0
        self.logger = setup_logger("HeartbeatManager", "INFO")
    
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
    
    def start(self, interval_ms: float, generation: int):
        """
        Start heartbeat loop
        
        Args:
            interval_ms: Server-specified heartbeat interval
            generation: Connection generation the loop belongs to
        """
        self.stop()
        self.interval_ms = interval_ms
        self.generation = generation
        self._task = asyncio.create_task(self._heartbeat_loop(interval_ms, generation))
        self.logger.debug(f"Heartbeat started every {interval_ms}ms (generation {generation})")
    
    def stop(self):
        """Stop heartbeat loop; safe when not running"""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
    
    async def send_heartbeat(self) -> bool:
        """Send one heartbeat frame"""
        sent = await self._send(heartbeat_frame(self._sequence()))
        if sent:
            self.beats_sent += 1
            self.logger.debug("Sending heartbeat")
        return sent
    
    async def _heartbeat_loop(self, interval_ms: float, generation: int):
        try:
            while True:
                await asyncio.sleep(interval_ms / 1000.0)
                
                if self._generation() != generation:
                    self.logger.debug(f"Heartbeat for generation {generation} superseded")
                    return
                
                await self.send_heartbeat()
                
        except asyncio.CancelledError:
            self.logger.debug("Heartbeat loop cancelled")
            raise
        except Exception as e:
            self.logger.error(f"Heartbeat loop error: {e}")
