"""Delayed "delivered" status updates as cancellable asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Optional, Set
from uuid import UUID

logger = logging.getLogger(__name__)

DeliveryCallback = Callable[[], Awaitable[None]]


class DeliveryScheduler:
    """
    One pending task per message, grouped by conversation.

    A task sleeps for ``delay_seconds`` and then runs its callback. Errors
    raised by the callback are logged and stop at the task boundary.
    """

    def __init__(self, delay_seconds: float = 0.1) -> None:
        self.delay_seconds = delay_seconds
        self._tasks: Dict[UUID, asyncio.Task] = {}
        self._by_conversation: Dict[UUID, Set[UUID]] = defaultdict(set)

    def schedule(
        self,
        conversation_id: UUID,
        message_id: UUID,
        callback: DeliveryCallback,
        delay: Optional[float] = None,
    ) -> asyncio.Task:
        self.cancel(message_id)
        task = asyncio.create_task(
            self._run(message_id, callback, self.delay_seconds if delay is None else delay),
            name=f"deliver:{message_id}",
        )
        self._tasks[message_id] = task
        self._by_conversation[conversation_id].add(message_id)
        task.add_done_callback(
            lambda t: self._forget(conversation_id, message_id, t)
        )
        return task

    async def _run(self, message_id: UUID, callback: DeliveryCallback, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except Exception:
            logger.exception("Delivered update failed for message %s", message_id)

    def _forget(self, conversation_id: UUID, message_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(message_id) is not task:
            return
        del self._tasks[message_id]
        pending = self._by_conversation.get(conversation_id)
        if pending is not None:
            pending.discard(message_id)
            if not pending:
                del self._by_conversation[conversation_id]

    def cancel(self, message_id: UUID) -> bool:
        task = self._tasks.get(message_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_conversation(self, conversation_id: UUID) -> int:
        cancelled = 0
        for message_id in list(self._by_conversation.get(conversation_id, ())):
            if self.cancel(message_id):
                cancelled += 1
        if cancelled:
            logger.debug(
                "Cancelled %d pending delivered updates for conversation %s",
                cancelled,
                conversation_id,
            )
        return cancelled

    def pending(self, conversation_id: Optional[UUID] = None) -> int:
        if conversation_id is None:
            return sum(1 for t in self._tasks.values() if not t.done())
        return sum(
            1
            for message_id in self._by_conversation.get(conversation_id, ())
            if not self._tasks[message_id].done()
        )

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._by_conversation.clear()
