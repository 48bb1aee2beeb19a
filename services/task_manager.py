import asyncio
from typing import Dict
from core.logger import logger

class TaskManager:
    """Tracks one background task per quiz session."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def register_task(self, session_id: str, task: asyncio.Task):
        """Register a new task for a session, cancelling any existing one."""
        self.cancel_task(session_id)
        self._tasks[session_id] = task
        logger.debug("Registered clock task", session_id=session_id)

        # Add callback to remove from dict when done
        task.add_done_callback(lambda t: self._cleanup_task(session_id, t))

    def cancel_task(self, session_id: str):
        """Cancel the active task for a session if it exists."""
        if session_id in self._tasks:
            task = self._tasks[session_id]
            if not task.done():
                task.cancel()
                logger.debug("Cancelled clock task", session_id=session_id)
            del self._tasks[session_id]

    def cancel_all(self):
        for session_id in list(self._tasks):
            self.cancel_task(session_id)

    def is_running(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def _cleanup_task(self, session_id: str, task: asyncio.Task):
        """Remove task from dict if it's still the registered one."""
        if session_id in self._tasks and self._tasks[session_id] == task:
            del self._tasks[session_id]
