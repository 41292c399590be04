"""Server-owned campaign runs.

A run is started by the first request for its run key and lives until the
pipeline finishes, whatever happens to the requests watching it. Each
request's transport is a subscriber: it first receives the run's event
history, then live events. A subscriber whose channel dies is dropped; the
run carries on and still persists its result.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from api.transport import SseTransport
from models.campaign import CampaignRequest
from models.events import ErrorEvent, StreamEvent
from pipeline.stage_runner import Emit
from utils.slugify import bare_domain

logger = logging.getLogger(__name__)

RunFactory = Callable[[Emit], Awaitable[Any]]


def run_key(request: CampaignRequest) -> str:
    """Concurrent requests with equal keys share one run.

    The campaign id is part of the key: a run upserts exactly one record, so
    requests naming different records never join each other.
    """
    return f"{bare_domain(request.domain)}|{request.slug or ''}|{request.campaign_id or ''}"


class CampaignRun:
    def __init__(self, key: str):
        self.key = key
        self.history: list[StreamEvent] = []
        self.task: asyncio.Task | None = None
        self.finished = False
        self._subscribers: list[SseTransport] = []
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: StreamEvent) -> None:
        async with self._lock:
            self.history.append(event)
            for transport in list(self._subscribers):
                await transport.send(event)
                if transport.closed:
                    self._subscribers.remove(transport)
                    logger.info("Run %s: subscriber gone, %d left", self.key, len(self._subscribers))

    async def subscribe(self, transport: SseTransport) -> None:
        async with self._lock:
            for event in self.history:
                if not await transport.send(event):
                    return
            if self.finished:
                await transport.close()
                return
            self._subscribers.append(transport)

    async def finish(self) -> None:
        async with self._lock:
            self.finished = True
            subscribers, self._subscribers = self._subscribers, []
        for transport in subscribers:
            await transport.close()


class RunRegistry:
    """In-flight runs by run key."""

    def __init__(self):
        self._runs: dict[str, CampaignRun] = {}

    def __len__(self) -> int:
        return len(self._runs)

    async def start_or_join(self, key: str, factory: RunFactory, transport: SseTransport) -> CampaignRun:
        run = self._runs.get(key)
        if run is not None:
            logger.info("Run %s already in flight; joining with %d events replayed", key, len(run.history))
            await run.subscribe(transport)
            return run

        run = CampaignRun(key)
        self._runs[key] = run
        await run.subscribe(transport)
        run.task = asyncio.create_task(self._drive(run, factory))
        return run

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        tasks = [run.task for run in self._runs.values() if run.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drive(self, run: CampaignRun, factory: RunFactory) -> None:
        try:
            await factory(run.publish)
        except Exception as exc:
            logger.exception("Run %s ended with an unhandled error", run.key)
            await run.publish(ErrorEvent(message=f"Unexpected error: {exc}"))
        finally:
            if self._runs.get(run.key) is run:
                del self._runs[run.key]
            await run.finish()
