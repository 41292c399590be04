"""Campaign pipeline step table and the model-backed stage definitions.

Step order is fixed. Each model stage's prompt builder receives the parsed
results of all earlier steps, keyed by step name:

  Website Scraper          → ScrapedWebsite
  Company Profiler         → CompanyProfile
  ICP Brainstormer         → IcpBrainstorm
  Cold Email Ranker        → PersonaRanking
  LinkedIn Filter Builder  → LinkedInFilters

Lead Finder and Email Writer are driven by the orchestrator directly (they
call collaborators rather than a single streamed completion).
"""
from typing import Any

from models.campaign import (
    CompanyProfile,
    ICPPersona,
    IcpBrainstorm,
    LinkedInFilters,
    PersonaRanking,
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
)
from models.stages import FieldDef, StageDefinition
from utils.slugify import bare_domain

# (agent_start, agent_complete) progress per step. Chosen for perceived
# smoothness, not measured completion.
PROGRESS = {
    WEBSITE_SCRAPER: (5, 10),
    COMPANY_PROFILER: (12, 20),
    ICP_BRAINSTORMER: (22, 30),
    COLD_EMAIL_RANKER: (32, 40),
    LINKEDIN_FILTER_BUILDER: (42, 50),
    LEAD_FINDER: (52, 70),
    EMAIL_WRITER: (72, 95),
}
COMPLETE_PROGRESS = 100


def select_persona(personas: list[ICPPersona], ranking: PersonaRanking | None) -> ICPPersona | None:
    """Persona chosen by the ranker, matched on id; first persona when no id matches."""
    if not personas:
        return None
    if ranking is not None:
        chosen = next((p for p in personas if p.id == ranking.selected_persona_id), None)
        if chosen is not None:
            return chosen
    return personas[0]


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_company_profiler_prompt(results: dict[str, Any]) -> str:
    website: ScrapedWebsite = results[WEBSITE_SCRAPER]
    domain = bare_domain(website.url)
    return f"""\
You are a company research analyst. Analyze this website and extract a structured company profile.

## Website Data
URL: {website.url}
Title: {website.title}
Description: {website.description}

## Content
{website.markdown}

Respond with ONLY valid JSON:
{{
  "name": "Company Name",
  "domain": "{domain}",
  "tagline": "Main tagline",
  "productOrService": "What they sell",
  "problemTheySolve": "Core problem they address",
  "howTheySolveIt": "Solution approach",
  "targetMarket": "Who they serve",
  "existingCustomerTypes": ["Type 1", "Type 2"],
  "caseStudiesOrTestimonials": ["Case study 1"],
  "geography": {{
    "primaryMarkets": ["Country 1"],
    "officeLocations": [],
    "evidenceSignals": ["Signal 1"],
    "confidence": "medium",
    "reasoning": "Geographic reasoning"
  }},
  "industry": "Industry",
  "competitiveAdvantage": "What makes them different",
  "pricingModel": "freemium | enterprise | SMB | unknown",
  "companyMaturity": "early-stage | growth | established | enterprise",
  "salesMotion": "self-serve | sales-led | hybrid | unknown"
}}"""


def build_icp_brainstormer_prompt(results: dict[str, Any]) -> str:
    profile: CompanyProfile = results[COMPANY_PROFILER]
    case_studies = ", ".join(profile.case_studies_or_testimonials) or "None"
    return f"""\
You are a sales strategist. Generate 4 buyer personas for this company.

## Company
Name: {profile.name}
Product: {profile.product_or_service}
Problem: {profile.problem_they_solve}
Target: {profile.target_market}
Industry: {profile.industry}

## Case Studies
{case_studies}

Respond with ONLY valid JSON:
{{
  "personas": [
    {{
      "id": "icp_a",
      "name": "The [Name]",
      "titles": ["Title 1", "Title 2", "Title 3"],
      "seniority": "vp",
      "department": "Sales",
      "companySize": "50-200",
      "companyStage": "Series A/B",
      "industries": ["SaaS"],
      "painPoints": ["Pain 1"],
      "goals": ["Goal 1"],
      "dayToDay": "Brief description",
      "buyingTriggers": ["Trigger 1"],
      "valueTheySeek": "Value",
      "whyThisPersona": "Why this persona"
    }}
  ],
  "reasoning": "Overall reasoning"
}}"""


def build_cold_email_ranker_prompt(results: dict[str, Any]) -> str:
    profile: CompanyProfile = results[COMPANY_PROFILER]
    brainstorm: IcpBrainstorm = results[ICP_BRAINSTORMER]
    personas_summary = "\n".join(
        f"- {p.id}: {p.name} ({', '.join(p.titles[:2])})" for p in brainstorm.personas
    )
    return f"""\
You are a cold email expert. Select the persona MOST LIKELY TO RESPOND to cold email.

## Company
{profile.name} - {profile.product_or_service}
Pricing: {profile.pricing_model}

## Personas
{personas_summary}

Score each on: Inbox Accessibility, Pain Urgency, Decision Authority, Reachability, Response Likelihood (1-10)

Respond with ONLY valid JSON:
{{
  "evaluations": [
    {{
      "personaId": "icp_a",
      "personaName": "The...",
      "overallScore": 7.5,
      "inboxAccessibility": 6,
      "painUrgency": 8,
      "decisionAuthority": 7,
      "reachability": 8,
      "responseLikelihood": 7,
      "strengths": ["Strength 1"],
      "weaknesses": ["Weakness 1"],
      "recommendation": "Brief recommendation"
    }}
  ],
  "selectedPersonaId": "icp_a",
  "selectedPersonaName": "The...",
  "selectionReasoning": "Why this persona is best for cold email"
}}"""


def build_linkedin_filter_prompt(results: dict[str, Any]) -> str:
    brainstorm: IcpBrainstorm = results[ICP_BRAINSTORMER]
    persona = select_persona(brainstorm.personas, results.get(COLD_EMAIL_RANKER))
    return f"""\
Translate this ICP to LinkedIn Sales Navigator filters.

## Persona
Name: {persona.name}
Titles: {', '.join(persona.titles)}
Company Size: {persona.company_size}
Industries: {', '.join(persona.industries)}

## Geography IDs
- United States: 103644278
- United Kingdom: 101165590
- Canada: 101174742
- Germany: 101282230

## Industry IDs
- Software Development: 4
- IT Services: 96
- Financial Services: 43
- Marketing Services: 1862

Respond with ONLY valid JSON:
{{
  "titles": ["Title 1", "Title 2"],
  "companySize": "50-200",
  "industries": [{{ "id": "4", "text": "Software Development" }}],
  "locations": [{{ "id": "103644278", "text": "United States" }}]
}}"""


# ---------------------------------------------------------------------------
# Stage table
# ---------------------------------------------------------------------------

def _stage(name: str, **kwargs) -> StageDefinition:
    start, complete = PROGRESS[name]
    return StageDefinition(name=name, start_progress=start, complete_progress=complete, **kwargs)


def _strings(*names: str) -> tuple[FieldDef, ...]:
    return tuple(FieldDef(name=n, kind="string") for n in names)


COMPANY_PROFILER_STAGE = _stage(
    COMPANY_PROFILER,
    message="Understanding your business...",
    prompt_builder=build_company_profiler_prompt,
    max_output_tokens=4096,
    field_schema=_strings(
        "name", "tagline", "productOrService", "problemTheySolve",
        "targetMarket", "industry", "pricingModel", "competitiveAdvantage",
    ),
    result_model=CompanyProfile,
    summarize=lambda profile: f"Analyzed {profile.name}",
)

ICP_BRAINSTORMER_STAGE = _stage(
    ICP_BRAINSTORMER,
    message="Generating buyer personas...",
    prompt_builder=build_icp_brainstormer_prompt,
    max_output_tokens=8192,
    field_schema=(FieldDef(name="personas", kind="array"), *_strings("reasoning")),
    result_model=IcpBrainstorm,
    summarize=lambda result: f"Generated {len(result.personas)} personas",
    details=lambda result: [p.name for p in result.personas],
)

COLD_EMAIL_RANKER_STAGE = _stage(
    COLD_EMAIL_RANKER,
    message="Selecting best persona for outreach...",
    prompt_builder=build_cold_email_ranker_prompt,
    max_output_tokens=4096,
    field_schema=(
        FieldDef(name="evaluations", kind="array"),
        *_strings("selectedPersonaId", "selectedPersonaName", "selectionReasoning"),
    ),
    result_model=PersonaRanking,
    summarize=lambda ranking: f"Selected: {ranking.selected_persona_name or ranking.selected_persona_id or 'N/A'}",
)

LINKEDIN_FILTER_BUILDER_STAGE = _stage(
    LINKEDIN_FILTER_BUILDER,
    message="Building search filters...",
    prompt_builder=build_linkedin_filter_prompt,
    max_output_tokens=2048,
    field_schema=(
        FieldDef(name="titles", kind="array"),
        *_strings("companySize"),
        FieldDef(name="industries", kind="array"),
        FieldDef(name="locations", kind="array"),
    ),
    result_model=LinkedInFilters,
    summarize=lambda filters: f"Built filters: {', '.join(filters.titles) or 'N/A'}",
)

GENERATION_STAGES: tuple[StageDefinition, ...] = (
    COMPANY_PROFILER_STAGE,
    ICP_BRAINSTORMER_STAGE,
    COLD_EMAIL_RANKER_STAGE,
    LINKEDIN_FILTER_BUILDER_STAGE,
)
