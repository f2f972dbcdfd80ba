# Timer Registry - Generation-Tagged Cancellable Timers
# One asyncio task per named slot, silenced once its generation is superseded

"""
Timer Registry Module

Responsibilities:
- Run one-shot delayed callbacks as asyncio tasks
- Keep at most one pending timer per name (starting replaces)
- Tag each timer with the connection generation it was created under and
  turn it into a no-op if that generation is no longer current
- Cancel one or all timers (teardown, manual disconnect)
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from ..utils.logger import setup_logger

class GenerationTimer:
    """Handle for one scheduled callback"""
    
    def __init__(self, name: str, generation: int, task: asyncio.Task):
        self.name = name
        self.generation = generation
        self.task = task
    
    def cancel(self):
        if not self.task.done() and self.task is not _current_task():
            self.task.cancel()

class TimerRegistry:
    """Named, generation-tagged timers"""
    
    def __init__(self, generation_getter: Callable[[], int]):
        self._generation = generation_getter
        self._timers: Dict[str, GenerationTimer] = {}
        self.logger = setup_logger("TimerRegistry", "INFO")
    
    def start(
        self,
        name: str,
        delay_ms: float,
        callback: Callable[[], Awaitable[None]],
        generation: Optional[int] = None
    ) -> GenerationTimer:
        """
        Schedule callback after delay_ms, replacing any timer with this name
        
        Args:
            name: Timer slot
            delay_ms: Delay in milliseconds
            callback: Coroutine function run on firing
            generation: Generation tag (defaults to the current one)
        """
        self.cancel(name)
        if generation is None:
            generation = self._generation()
        task = asyncio.create_task(self._run(name, delay_ms, generation, callback))
        timer = GenerationTimer(name, generation, task)
        self._timers[name] = timer
        self.logger.debug(f"Timer '{name}' armed for {delay_ms}ms (generation {generation})")
        return timer
    
    def cancel(self, name: str) -> bool:
        """Cancel the named timer; safe when none is pending"""
        timer = self._timers.pop(name, None)
        if timer is None:
            return False
        timer.cancel()
        return True
    
    def cancel_all(self):
        """Cancel every pending timer"""
        for name in list(self._timers):
            self.cancel(name)
    
    def is_pending(self, name: str) -> bool:
        timer = self._timers.get(name)
        return timer is not None and not timer.task.done()
    
    @property
    def pending(self):
        """Names of timers that have not fired yet"""
        return sorted(name for name in self._timers if self.is_pending(name))
    
    async def _run(self, name, delay_ms, generation, callback):
        await asyncio.sleep(delay_ms / 1000.0)
        
        current = self._timers.get(name)
        if current is not None and current.task is _current_task():
            del self._timers[name]
        
        if generation != self._generation():
            self.logger.debug(
                f"Stale timer '{name}' from generation {generation} ignored"
            )
            return
        
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Timer '{name}' callback failed: {e}")

def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
