"""Cancellable client for POST /api/generate-campaign/stream.

`start_generation` aborts any run this client is already reading, then reads
the new stream in a background task. Token events feed the field store;
every other event moves the render state and notifies state listeners.
An abort is not a failure: it ends the read loop and leaves `error` unset.
"""
import asyncio
import logging
from typing import Any, Callable

import httpx

from client.field_store import FieldSubscriptionStore
from client.sse_decoder import SseDecoder
from client.state import StreamingState, initial_state, is_render_event, reduce
from models.events import StreamEvent

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/generate-campaign/stream"

StateListener = Callable[[StreamingState], None]


class CampaignStreamClient:
    def __init__(
        self,
        base_url: str,
        store: FieldSubscriptionStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store or FieldSubscriptionStore()
        self.state = initial_state()
        self._http = http_client
        self._listeners: list[StateListener] = []
        self._task: asyncio.Task | None = None

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start_generation(
        self, domain: str, campaign_id: str | None = None, slug: str | None = None,
    ) -> asyncio.Task:
        await self.stop_generation()
        self.store.clear()
        self._set_state(initial_state().model_copy(update={"is_streaming": True, "domain": domain}))

        body: dict[str, Any] = {"domain": domain}
        if campaign_id:
            body["campaignId"] = campaign_id
        if slug:
            body["slug"] = slug
        self._task = asyncio.create_task(self._read(body))
        return self._task

    async def stop_generation(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Generation stopped by caller")
        self._set_state(self.state.model_copy(update={"is_streaming": False}))

    async def wait(self) -> StreamingState:
        """Wait for the current read loop to end and return the final state."""
        if self._task is not None:
            await self._task
        return self.state

    async def _read(self, body: dict[str, Any]) -> None:
        decoder = SseDecoder()
        client = self._http or httpx.AsyncClient(timeout=None)
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}{STREAM_PATH}",
                json=body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                response.raise_for_status()
                async for chunk in response.aiter_text():
                    for event in decoder.feed(chunk):
                        self._handle(event)
        except httpx.HTTPError as exc:
            logger.warning("Campaign stream failed: %s", exc)
            self._set_state(self.state.model_copy(update={"is_streaming": False, "error": str(exc)}))
            return
        finally:
            if self._http is None:
                await client.aclose()

        if self.state.is_streaming:
            self._set_state(self.state.model_copy(update={
                "is_streaming": False,
                "error": "Stream ended before the campaign completed",
            }))

    def _handle(self, event: StreamEvent) -> None:
        if not is_render_event(event):
            self.store.update(event.agent, event.fields, event.field_count, event.token_count)
            return
        self._set_state(reduce(self.state, event))

    def _set_state(self, state: StreamingState) -> None:
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")
