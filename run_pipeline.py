#!/usr/bin/env python3
"""Run one campaign pipeline in-process and print its event stream.

Usage:
    python run_pipeline.py acme.com                 # slug derived from the domain
    python run_pipeline.py acme.com --slug acme-q3  # explicit slug

Frames go to stdout exactly as the HTTP endpoint would send them; logs go to
stderr. Exits with status 1 when the run ends in a fatal error.
"""
import argparse
import asyncio
import logging
import sys

from api.transport import format_frame
from models.campaign import CampaignRequest
from models.events import ErrorEvent, StreamEvent
from pipeline.orchestrator import build_orchestrator
from settings import Settings

logger = logging.getLogger("run_pipeline")


async def _run(settings: Settings, request: CampaignRequest) -> bool:
    """Returns True unless the run emitted a fatal error."""
    orchestrator = build_orchestrator(settings)
    failed = False

    async def publish(event: StreamEvent) -> None:
        nonlocal failed
        if isinstance(event, ErrorEvent) and event.fatal:
            failed = True
        sys.stdout.write(format_frame(event.event, event.payload()))
        sys.stdout.flush()

    run = await orchestrator.run(request, publish)
    logger.info("=== Done: %s (%s) ===", run.slug, run.status)
    return not failed


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("domain", help="Company domain or URL, e.g. acme.com")
    parser.add_argument("--slug", default=None,
                        help="Campaign slug; defaults to the next free slug for the domain")
    parser.add_argument("--campaign-id", default=None, dest="campaign_id",
                        help="Existing campaign record to update")
    args = parser.parse_args()

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    request = CampaignRequest(domain=args.domain, slug=args.slug, campaign_id=args.campaign_id)
    ok = asyncio.run(_run(settings, request))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
