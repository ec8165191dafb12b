"""Fire-and-forget change notifications."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

logger = logging.getLogger("booklog")

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


class EventBus:
    """Deliver events to async subscribers as background tasks.

    ``emit`` returns immediately; a failing subscriber is logged and never
    affects the emitter or the other subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}
        self._pending: Set["asyncio.Task[None]"] = set()

    def subscribe(self, event: str, handler: Handler) -> None:
        self._subscribers.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        # Delivery is best effort: tasks still pending when the running loop
        # closes (Flask runs each async view on its own loop) are cancelled.
        for handler in self._subscribers.get(event, []):
            task = asyncio.get_running_loop().create_task(
                self._deliver(event, handler, payload)
            )
            # Keep a reference so the task is not garbage collected mid-flight
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: str, handler: Handler, payload: Dict[str, Any]) -> None:
        try:
            await handler(payload)
        except Exception:
            logger.exception(f"Subscriber for '{event}' failed")

    async def drain(self) -> None:
        """Wait for every delivery in flight (used at shutdown and in tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
