"""
Per-engine event bus.

Listeners are plain or async callables registered with ``subscribe``;
``stream`` hands out a bounded queue per subscriber for consumers that want
to iterate events (the WebSocket endpoint does). Nothing here is global:
every ``WorkflowEngine`` owns its own bus.
"""
from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional, Set, Tuple

from flowcore.config import settings
from flowcore.core.logging import get_logger
from flowcore.schemas.execution import EventType, WorkflowEvent

logger = get_logger("events")

Listener = Callable[[WorkflowEvent], Any]

TERMINAL_EVENTS = frozenset({
    EventType.WORKFLOW_COMPLETE,
    EventType.WORKFLOW_ERROR,
    EventType.WORKFLOW_CANCELLED,
})


class EventBus:
    def __init__(self, queue_size: Optional[int] = None) -> None:
        self._queue_size = queue_size or settings.EVENT_QUEUE_SIZE
        self._listeners: List[Tuple[Listener, Optional[Set[EventType]]]] = []
        self._queues: List[Tuple[asyncio.Queue, Optional[str]]] = []

    def subscribe(self, listener: Listener, event_types: Optional[Iterable[EventType]] = None) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        entry = (listener, set(event_types) if event_types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def open_queue(self, execution_id: Optional[str] = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._queues.append((queue, execution_id))
        return queue

    def close_queue(self, queue: asyncio.Queue) -> None:
        self._queues = [(q, e) for q, e in self._queues if q is not queue]

    async def stream(self, execution_id: Optional[str] = None) -> AsyncIterator[WorkflowEvent]:
        """
        Yield events (optionally for one execution) until that execution
        reaches a terminal event.
        """
        queue = self.open_queue(execution_id)
        try:
            while True:
                event = await queue.get()
                yield event
                if execution_id and event.type in TERMINAL_EVENTS:
                    break
        finally:
            self.close_queue(queue)

    async def emit(
        self,
        event_type: EventType,
        execution_id: str,
        workflow_id: str,
        node_id: Optional[str] = None,
        data: Any = None,
    ) -> WorkflowEvent:
        event = WorkflowEvent(
            type=event_type,
            timestamp=datetime.now(timezone.utc),
            execution_id=execution_id,
            workflow_id=workflow_id,
            node_id=node_id,
            data=data,
        )

        for listener, types in list(self._listeners):
            if types is not None and event_type not in types:
                continue
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # Listener failures are logged, never propagated to the run
                logger.exception(f"Event listener failed for {event_type.value}")

        for queue, scoped_id in list(self._queues):
            if scoped_id is not None and scoped_id != execution_id:
                continue
            if queue.full():
                # Drop the oldest event for slow consumers
                queue.get_nowait()
                logger.warning(f"Event queue full, dropped oldest event for execution {execution_id}")
            queue.put_nowait(event)

        return event
