from pathlib import Path

import pytest

from fakes import FakeLeadFinder, FakeScraper, FakeStore, ScriptedProvider, default_replies
from pipeline.orchestrator import CampaignOrchestrator
from settings import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp directory. No real API key needed for unit tests."""
    return Settings(
        openai_api_key="test-key-not-used-in-unit-tests",
        data_dir=tmp_path,
        token_batch_interval_ms=1,
    )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider(default_replies())


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def lead_finder() -> FakeLeadFinder:
    return FakeLeadFinder()


@pytest.fixture
def scraper() -> FakeScraper:
    return FakeScraper()


@pytest.fixture
def orchestrator(settings, provider, store, lead_finder, scraper) -> CampaignOrchestrator:
    """Orchestrator wired to fakes; replace a collaborator on the instance to vary a test."""
    return CampaignOrchestrator(
        settings,
        provider=provider,
        store=store,
        lead_finder=lead_finder,
        scraper=scraper,
    )
