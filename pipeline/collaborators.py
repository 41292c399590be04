"""External collaborators of a run, specified by interface.

The orchestrator only depends on the protocols below. The concrete classes
are the local implementations wired up by the API and the CLI: a file-backed
campaign store, a file-backed lead source and a plain HTTP website fetcher.
"""
import asyncio
import html
import json
import logging
import re
from contextlib import aclosing
from pathlib import Path
from typing import Any, AsyncIterator, Protocol

import httpx

from models.campaign import IDENTIFIER_PATTERN, Lead, LinkedInFilters, ScrapedWebsite
from pipeline.errors import PersistenceError, ScrapeError

logger = logging.getLogger(__name__)


class ModelProvider(Protocol):
    def stream_completion(self, prompt: str, max_tokens: int) -> AsyncIterator[str]: ...


class CampaignStore(Protocol):
    async def upsert(self, identifier: str, record: dict[str, Any]) -> None: ...

    def list_slugs(self) -> list[str]: ...


class LeadFinder(Protocol):
    async def find_leads(self, filters: LinkedInFilters, limit: int) -> list[Lead]: ...


class WebsiteScraper(Protocol):
    async def scrape(self, url: str) -> ScrapedWebsite: ...


async def collect_completion(provider: ModelProvider, prompt: str, max_tokens: int) -> str:
    """Drain a provider stream into one string (for non-streamed callers)."""
    async with aclosing(provider.stream_completion(prompt, max_tokens)) as stream:
        parts = [delta async for delta in stream]
    return "".join(parts)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class JsonFileCampaignStore:
    """Upserts campaign records as `<directory>/<identifier>.json`."""

    def __init__(self, directory: Path):
        self.directory = directory

    async def upsert(self, identifier: str, record: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._write, identifier, record)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save campaign '{identifier}': {exc}") from exc

    def list_slugs(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def load(self, identifier: str) -> dict[str, Any] | None:
        path = self._path(identifier)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _path(self, identifier: str) -> Path:
        if not IDENTIFIER_PATTERN.fullmatch(identifier):
            raise PersistenceError(f"Invalid campaign identifier: {identifier!r}")
        return self.directory / f"{identifier}.json"

    def _write(self, identifier: str, record: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        existing = self.load(identifier) or {}
        merged = {**existing, **record}
        if "created_at" in existing:
            merged["created_at"] = existing["created_at"]
        self._path(identifier).write_text(json.dumps(merged, indent=2), encoding="utf-8")
        logger.info("Campaign saved → %s", self._path(identifier))


# ---------------------------------------------------------------------------
# Lead source
# ---------------------------------------------------------------------------

class JsonFileLeadFinder:
    """Serves candidate contacts from a JSON list, matched on title keywords."""

    def __init__(self, path: Path):
        self.path = path

    async def find_leads(self, filters: LinkedInFilters, limit: int) -> list[Lead]:
        if not self.path.exists():
            logger.warning("Lead file not found: %s. No leads available.", self.path)
            return []

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        leads = [Lead.model_validate(item) for item in raw]
        keywords = [t.lower() for t in filters.titles if t]
        if keywords:
            leads = [
                lead for lead in leads
                if any(k in lead.job_title.lower() for k in keywords)
            ]
        return leads[:limit]


# ---------------------------------------------------------------------------
# Website
# ---------------------------------------------------------------------------

_TITLE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_META_DESCRIPTION = re.compile(
    r"<meta[^>]+(?:name|property)=[\"'](?:og:)?description[\"'][^>]*content=[\"'](.*?)[\"']",
    re.IGNORECASE | re.DOTALL,
)
_NON_CONTENT = re.compile(r"<(script|style|noscript)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_BLANK_RUNS = re.compile(r"\n\s*\n+")
_SPACE_RUNS = re.compile(r"[ \t]+")


class HttpWebsiteScraper:
    def __init__(self, max_chars: int = 8000, client: httpx.AsyncClient | None = None,
                 timeout: float = 20.0):
        self.max_chars = max_chars
        self._client = client
        self._timeout = timeout

    async def scrape(self, url: str) -> ScrapedWebsite:
        logger.info("Scraping %s", url)
        try:
            if self._client is not None:
                response = await self._client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ScrapeError(f"Failed to scrape website: {exc}") from exc

        page = response.text
        return ScrapedWebsite(
            url=url,
            title=_first_match(_TITLE, page),
            description=_first_match(_META_DESCRIPTION, page),
            markdown=html_to_text(page)[: self.max_chars],
        )


def html_to_text(page: str) -> str:
    """Readable text of an HTML page: scripts/styles dropped, tags stripped."""
    text = _TAG.sub("\n", _NON_CONTENT.sub("", page))
    text = _SPACE_RUNS.sub(" ", html.unescape(text))
    return _BLANK_RUNS.sub("\n\n", text).strip()


def _first_match(pattern: re.Pattern, page: str) -> str:
    match = pattern.search(page)
    return html.unescape(match.group(1).strip()) if match else ""
