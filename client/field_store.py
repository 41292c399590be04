"""Latest partially parsed fields per stage, outside the render state.

Token events update this store many times per second. Subscribers are told
at most once per frame that something changed and read `get()`/`snapshot()`
on their own schedule.
"""
import asyncio
import logging
import time
from typing import Any, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
Scheduler = Callable[[float, Callable[[], None]], Any]


class StreamingFieldData(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)
    field_count: int = 0
    token_count: int = 0
    updated_at: float = Field(default_factory=time.monotonic)


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # no loop: deliver straight away
        callback()
        return None
    return loop.call_later(delay, callback)


class FieldSubscriptionStore:
    def __init__(self, frame_interval: float = 0.016, scheduler: Scheduler | None = None):
        self.frame_interval = frame_interval
        self._scheduler = scheduler or _loop_scheduler
        self._data: dict[str, StreamingFieldData] = {}
        self._listeners: list[Listener] = []
        self._pending = False
        self._handle: Any = None

    def update(self, stage: str, fields: dict[str, Any], field_count: int, token_count: int) -> None:
        """Replace the stage's entry (last writer wins) and schedule one notification."""
        self._data[stage] = StreamingFieldData(
            fields=fields, field_count=field_count, token_count=token_count,
        )
        self._schedule()

    def get(self, stage: str) -> StreamingFieldData | None:
        return self._data.get(stage)

    def snapshot(self) -> dict[str, StreamingFieldData]:
        return dict(self._data)

    def clear(self) -> None:
        self._data.clear()
        self._cancel_pending()
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _schedule(self) -> None:
        if self._pending:
            return
        self._pending = True
        self._handle = self._scheduler(self.frame_interval, self._flush)

    def _flush(self) -> None:
        self._pending = False
        self._handle = None
        self._notify()

    def _cancel_pending(self) -> None:
        if self._handle is not None and hasattr(self._handle, "cancel"):
            self._handle.cancel()
        self._pending = False
        self._handle = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Field store listener failed")
