"""
FastAPI application entry point.
Starts (or joins) a campaign run and streams its events as Server-Sent Events:
- API validates input and subscribes a transport
- The run is owned by the registry, not by the request
- The orchestrator makes all pipeline decisions
"""
import logging

from fastapi import FastAPI
from fastapi.responses import StreamingResponse

from api.runs import RunRegistry, run_key
from api.schemas import GenerateCampaignRequest, HealthResponse
from api.transport import QueueStreamWriter, SseTransport
from pipeline.orchestrator import CampaignOrchestrator, build_orchestrator
from settings import Settings

APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_app(settings: Settings | None = None,
               orchestrator: CampaignOrchestrator | None = None) -> FastAPI:
    settings = settings or Settings()
    orchestrator = orchestrator or build_orchestrator(settings)

    app = FastAPI(
        title="Campaign Streamer",
        version=APP_VERSION,
        description="Streams a multi-stage campaign generation pipeline over SSE",
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.registry = RunRegistry()

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Service status and number of in-flight runs."""
        return HealthResponse(version=APP_VERSION, active_runs=len(app.state.registry))

    @app.post("/api/generate-campaign/stream", tags=["Generation"])
    async def generate_campaign_stream(request: GenerateCampaignRequest):
        """
        Run the campaign pipeline for `domain` and stream its events.

        A request whose domain, slug and campaign id match an in-flight run
        joins it: the events so far are replayed, then live events follow.
        Disconnecting does not stop the run.
        """
        writer = QueueStreamWriter()
        transport = SseTransport(writer)
        key = run_key(request)
        logger.info("Stream requested for %s", key)

        await app.state.registry.start_or_join(
            key,
            lambda publish: orchestrator.run(request, publish),
            transport,
        )
        return StreamingResponse(
            writer.iter_bytes(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = Settings()
    logging.basicConfig(
        level=_settings.log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=_settings.api_host,
        port=_settings.api_port,
    )
