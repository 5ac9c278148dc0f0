"""
Event bus for cross-component profile notifications.

Interested observers subscribe a callback for a ProfileEvent. Events carry no
payload beyond their type; observers re-read whatever state they need.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class ProfileEvent(Enum):
    PROFILE_UPDATED = "profile_updated"
    PROFILE_REMOVED = "profile_removed"


class EventBus:
    """Fire-and-forget publish/subscribe for profile events."""

    def __init__(self):
        self._subscribers: Dict[ProfileEvent, List[Callable]] = defaultdict(list)
        self._pending = set()

    def subscribe(self, event: ProfileEvent, callback: Callable):
        """Register a sync or async callback for an event."""
        if callback not in self._subscribers[event]:
            self._subscribers[event].append(callback)

    def unsubscribe(self, event: ProfileEvent, callback: Callable):
        try:
            self._subscribers[event].remove(callback)
        except ValueError:
            pass

    def subscriber_count(self, event: ProfileEvent) -> int:
        return len(self._subscribers[event])

    def publish(self, event: ProfileEvent):
        """
        Notify every subscriber of an event.

        Coroutine callbacks are scheduled as tasks on the running loop. A
        failing subscriber is logged and does not stop delivery to the rest.
        """
        logger.debug(f"Publishing {event.value} to {len(self._subscribers[event])} subscriber(s)")

        for callback in list(self._subscribers[event]):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                logger.error(f"Subscriber {callback!r} failed for {event.value}: {e}", exc_info=True)

    def _on_task_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Async subscriber failed: {error}")

    async def drain(self):
        """Wait for scheduled async subscribers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
