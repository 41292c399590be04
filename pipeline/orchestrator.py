"""Campaign pipeline orchestrator.

Drives the fixed step sequence for one run and publishes a uniform event
stream:

  start → (agent_start → agent_token* → agent_complete) per step → complete
                                                        or → error (fatal)

Steps run strictly one after another; a fatal error halts the run before any
later step is started. Lead finding and persistence are the two collaborator
calls whose failure does not end the run.
"""
import logging
import random
import string
import time
from typing import Callable

from models.campaign import (
    Campaign,
    CampaignRequest,
    CompanyProfile,
    IcpBrainstorm,
    Lead,
    LinkedInFilters,
    PersonaRanking,
    QualifiedLead,
    ScrapedWebsite,
)
from models.events import (
    COLD_EMAIL_RANKER,
    COMPANY_PROFILER,
    EMAIL_WRITER,
    ICP_BRAINSTORMER,
    LEAD_FINDER,
    LINKEDIN_FILTER_BUILDER,
    WEBSITE_SCRAPER,
    AgentCompleteEvent,
    AgentStartEvent,
    AgentTokenEvent,
    CompleteEvent,
    ErrorEvent,
    StartEvent,
)
from models.stages import PipelineRun, StageDefinition, StageOutcome
from pipeline.collaborators import (
    CampaignStore,
    HttpWebsiteScraper,
    JsonFileCampaignStore,
    JsonFileLeadFinder,
    LeadFinder,
    ModelProvider,
    WebsiteScraper,
)
from pipeline.email_writer import EmailWriterContext, generate_emails_for_leads
from pipeline.errors import PipelineError
from pipeline.stage_runner import Emit, run_stage
from pipeline.stages import COMPLETE_PROGRESS, GENERATION_STAGES, PROGRESS, select_persona
from settings import Settings
from utils.openai_utils import OpenAIStreamingProvider
from utils.slugify import domain_to_slug, extract_company_name, next_available_slug, website_url

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def new_run_id() -> str:
    """'stream-<epoch ms>-<6 base36 chars>'."""
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"stream-{int(time.time() * 1000)}-{suffix}"


class CampaignOrchestrator:
    def __init__(
        self,
        settings: Settings,
        provider: ModelProvider,
        store: CampaignStore,
        lead_finder: LeadFinder,
        scraper: WebsiteScraper,
        stages: tuple[StageDefinition, ...] = GENERATION_STAGES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.provider = provider
        self.store = store
        self.lead_finder = lead_finder
        self.scraper = scraper
        self.stages = stages
        self.clock = clock

    def resolve_slug(self, request: CampaignRequest) -> str:
        if request.slug:
            return request.slug
        return next_available_slug(domain_to_slug(request.domain), self.store.list_slugs())

    async def run(self, request: CampaignRequest, publish: Emit) -> PipelineRun:
        """Execute one run, publishing every event through `publish`.

        Never raises for pipeline failures: they end in a single terminal
        `error` event and a run with status "failed".
        """
        slug = self.resolve_slug(request)
        run = PipelineRun(run_id=new_run_id(), domain=request.domain, slug=slug)
        logger.info("=== Run %s: %s → %s ===", run.run_id, request.domain, slug)

        await publish(StartEvent(
            pipeline_id=run.run_id,
            domain=request.domain,
            slug=slug,
            started_at=run.started_at.isoformat(),
        ))

        try:
            await self._scrape(run, publish)
            for definition in self.stages:
                await self._run_model_stage(run, definition, publish)
            leads = await self._find_leads(run, publish)
            qualified = await self._write_emails(run, leads, publish)
            campaign = self._assemble(run, request, qualified)
        except PipelineError as exc:
            return await self._fail(run, str(exc), publish)
        except Exception as exc:
            logger.exception("Run %s crashed", run.run_id)
            return await self._fail(run, f"Unexpected error: {exc}", publish)

        await self._persist(run, request, campaign, publish)
        return run

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _scrape(self, run: PipelineRun, publish: Emit) -> None:
        outcome = await self._begin(run, WEBSITE_SCRAPER, "Analyzing your website...", publish)
        started = self.clock()
        website = await self.scraper.scrape(website_url(run.domain))
        company_name = extract_company_name(run.domain)

        outcome.parsed_result = website
        outcome.finish("complete")
        await publish(AgentCompleteEvent(
            agent=WEBSITE_SCRAPER,
            duration=self._elapsed_ms(started),
            result=f"Found: {company_name}",
            output={"companyName": company_name, "title": website.title},
            progress=run.advance(PROGRESS[WEBSITE_SCRAPER][1]),
        ))

    async def _run_model_stage(self, run: PipelineRun, definition: StageDefinition, publish: Emit) -> None:
        await publish(AgentStartEvent(
            agent=definition.name,
            message=definition.message,
            progress=run.advance(definition.start_progress),
        ))
        try:
            outcome = await run_stage(
                definition,
                run.results(),
                self.provider,
                publish,
                batch_interval=self.settings.token_batch_interval,
                timeout=self.settings.stage_timeout_seconds,
            )
        except PipelineError:
            failed = StageOutcome(stage_name=definition.name)
            failed.finish("failed")
            run.stages.append(failed)
            raise

        run.stages.append(outcome)
        result = outcome.parsed_result
        await publish(AgentCompleteEvent(
            agent=definition.name,
            duration=outcome.duration_ms or 0,
            result=definition.summarize(result),
            output=result.model_dump(mode="json", by_alias=True),
            details=definition.details(result) if definition.details else None,
            progress=run.advance(definition.complete_progress),
        ))

    async def _find_leads(self, run: PipelineRun, publish: Emit) -> list[Lead]:
        outcome = await self._begin(run, LEAD_FINDER, "Finding sample leads...", publish)
        started = self.clock()
        filters: LinkedInFilters = run.results()[LINKEDIN_FILTER_BUILDER]
        progress = PROGRESS[LEAD_FINDER][1]

        try:
            leads = await self.lead_finder.find_leads(filters, self.settings.lead_preview_limit)
        except Exception as exc:
            logger.warning("  Lead Finder failed, continuing without leads: %s", exc)
            outcome.finish("failed")
            await publish(AgentCompleteEvent(
                agent=LEAD_FINDER,
                duration=self._elapsed_ms(started),
                result=f"Error: {exc}",
                output={"error": str(exc)},
                progress=run.advance(progress),
            ))
            return []

        outcome.parsed_result = leads
        outcome.finish("complete")
        logger.info("  Lead Finder found %d leads", len(leads))
        await publish(AgentCompleteEvent(
            agent=LEAD_FINDER,
            duration=self._elapsed_ms(started),
            result=f"Found {len(leads)} leads",
            output={"leadCount": len(leads)},
            progress=run.advance(progress),
        ))
        return leads

    async def _write_emails(self, run: PipelineRun, leads: list[Lead], publish: Emit) -> list[QualifiedLead]:
        progress = PROGRESS[EMAIL_WRITER][1]
        if not leads:
            outcome = await self._begin(run, EMAIL_WRITER, "No leads to write emails for...", publish)
            outcome.parsed_result = []
            outcome.finish("complete")
            await publish(AgentCompleteEvent(
                agent=EMAIL_WRITER,
                duration=0,
                result="No leads found - skipped",
                output={"emailCount": 0},
                progress=run.advance(progress),
            ))
            return []

        outcome = await self._begin(run, EMAIL_WRITER, "Crafting personalized emails...", publish)
        started = self.clock()

        async def on_batch(done: list[QualifiedLead]) -> None:
            await publish(AgentTokenEvent(
                agent=EMAIL_WRITER,
                fields={"emailCount": len(done)},
                field_count=1,
                token_count=len(done),
            ))

        qualified = await generate_emails_for_leads(
            leads,
            self._email_context(run),
            self.provider,
            batch_size=self.settings.email_batch_size,
            max_leads=self.settings.max_email_leads,
            sender_name=self.settings.sender_name,
            on_batch=on_batch,
        )

        outcome.parsed_result = qualified
        outcome.finish("complete")
        await publish(AgentCompleteEvent(
            agent=EMAIL_WRITER,
            duration=self._elapsed_ms(started),
            result=f"Generated {len(qualified)} personalized emails",
            output={"emailCount": len(qualified)},
            progress=run.advance(progress),
        ))
        return qualified

    # ------------------------------------------------------------------
    # Assembly and persistence
    # ------------------------------------------------------------------

    def _email_context(self, run: PipelineRun) -> EmailWriterContext:
        results = run.results()
        profile: CompanyProfile = results[COMPANY_PROFILER]
        brainstorm: IcpBrainstorm = results[ICP_BRAINSTORMER]
        ranking: PersonaRanking | None = results.get(COLD_EMAIL_RANKER)
        return EmailWriterContext(
            sender_company=profile.name or extract_company_name(run.domain),
            company_profile=profile,
            selected_persona=select_persona(brainstorm.personas, ranking),
            selection_reasoning=ranking.selection_reasoning if ranking else "",
        )

    def _assemble(self, run: PipelineRun, request: CampaignRequest,
                  qualified: list[QualifiedLead]) -> Campaign:
        results = run.results()
        website: ScrapedWebsite = results[WEBSITE_SCRAPER]
        profile: CompanyProfile = results[COMPANY_PROFILER]
        brainstorm: IcpBrainstorm = results[ICP_BRAINSTORMER]
        ranking: PersonaRanking | None = results.get(COLD_EMAIL_RANKER)
        filters: LinkedInFilters = results[LINKEDIN_FILTER_BUILDER]

        locations = filters.location_labels()
        return Campaign(
            slug=run.slug,
            domain=run.domain,
            campaign_id=request.campaign_id,
            company_name=profile.name or extract_company_name(run.domain),
            website_url=website.url,
            location=locations[0] if locations else "United States",
            helps_with=profile.problem_they_solve or "grow their business",
            great_at=profile.how_they_solve_it or "finding qualified leads",
            icp_attributes=[
                ", ".join(filters.titles),
                filters.company_size,
                ", ".join(filters.industry_labels()),
            ],
            qualified_leads=qualified,
            company_profile=profile,
            icp_personas=brainstorm.personas,
            persona_rankings=ranking.evaluations if ranking else [],
            linkedin_filters=filters,
        )

    async def _persist(self, run: PipelineRun, request: CampaignRequest,
                       campaign: Campaign, publish: Emit) -> None:
        run.status = "persisting"
        record = campaign.to_record()
        persisted = True
        try:
            await self.store.upsert(request.campaign_id or campaign.slug, record)
        except Exception as exc:
            persisted = False
            logger.warning("Run %s: campaign not saved: %s", run.run_id, exc)
            await publish(ErrorEvent(message=f"Failed to save campaign: {exc}", fatal=False))

        run.status = "complete"
        logger.info("=== Run %s complete (%d leads) ===", run.run_id, len(campaign.qualified_leads))
        await publish(CompleteEvent(
            slug=campaign.slug,
            campaign=record,
            progress=run.advance(COMPLETE_PROGRESS),
            persisted=persisted,
        ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _begin(self, run: PipelineRun, name: str, message: str, publish: Emit) -> StageOutcome:
        outcome = StageOutcome(stage_name=name, status="running")
        run.stages.append(outcome)
        await publish(AgentStartEvent(
            agent=name, message=message, progress=run.advance(PROGRESS[name][0]),
        ))
        return outcome

    async def _fail(self, run: PipelineRun, message: str, publish: Emit) -> PipelineRun:
        run.status = "failed"
        for outcome in run.stages:
            if outcome.status == "running":
                outcome.finish("failed")
        logger.error("Run %s failed: %s", run.run_id, message)
        await publish(ErrorEvent(message=message))
        return run

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.clock() - started) * 1000))


def build_orchestrator(settings: Settings) -> CampaignOrchestrator:
    """Orchestrator wired to the OpenAI provider and the local file-backed collaborators."""
    return CampaignOrchestrator(
        settings,
        provider=OpenAIStreamingProvider(settings.openai_api_key, settings.model),
        store=JsonFileCampaignStore(settings.campaigns_dir),
        lead_finder=JsonFileLeadFinder(settings.leads_file),
        scraper=HttpWebsiteScraper(max_chars=settings.scrape_max_chars),
    )
