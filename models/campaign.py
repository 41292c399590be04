"""Campaign domain models.

Stage result models mirror the camelCase JSON the model is asked to produce
(validated by alias). Every field except the identifying ones has a default so
that a model which leaves out an optional key still yields a usable result.
"""
import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class _StageResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ScrapedWebsite(BaseModel):
    url: str
    title: str = ""
    description: str = ""
    markdown: str = ""


class CompanyProfile(_StageResult):
    name: str
    domain: str = ""
    tagline: str = ""
    product_or_service: str = ""
    problem_they_solve: str = ""
    how_they_solve_it: str = ""
    target_market: str = ""
    existing_customer_types: list[str] = Field(default_factory=list)
    case_studies_or_testimonials: list[str] = Field(default_factory=list)
    geography: dict[str, Any] | None = None
    industry: str = ""
    competitive_advantage: str = ""
    pricing_model: str = ""
    company_maturity: str = ""
    sales_motion: str = ""


class ICPPersona(_StageResult):
    id: str
    name: str
    titles: list[str] = Field(default_factory=list)
    seniority: str = ""
    department: str = ""
    company_size: str = ""
    company_stage: str = ""
    industries: list[str] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    day_to_day: str = ""
    buying_triggers: list[str] = Field(default_factory=list)
    value_they_seek: str = ""
    why_this_persona: str = ""


class IcpBrainstorm(_StageResult):
    personas: list[ICPPersona] = Field(min_length=1)
    reasoning: str = ""


class PersonaEvaluation(_StageResult):
    persona_id: str
    persona_name: str = ""
    overall_score: float = 0.0
    inbox_accessibility: float = 0.0
    pain_urgency: float = 0.0
    decision_authority: float = 0.0
    reachability: float = 0.0
    response_likelihood: float = 0.0
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendation: str = ""


class PersonaRanking(_StageResult):
    evaluations: list[PersonaEvaluation] = Field(default_factory=list)
    selected_persona_id: str = ""
    selected_persona_name: str = ""
    selection_reasoning: str = ""


class LabeledId(BaseModel):
    """LinkedIn facet value, e.g. {"id": "103644278", "text": "United States"}."""

    id: str
    text: str


class LinkedInFilters(_StageResult):
    titles: list[str] = Field(default_factory=list)
    company_size: str = ""
    industries: list[LabeledId | str] = Field(default_factory=list)
    locations: list[LabeledId | str] = Field(default_factory=list)

    @staticmethod
    def label(item: LabeledId | str) -> str:
        return item if isinstance(item, str) else item.text

    def industry_labels(self) -> list[str]:
        return [self.label(i) for i in self.industries]

    def location_labels(self) -> list[str]:
        return [self.label(loc) for loc in self.locations]


class Lead(BaseModel):
    """A candidate contact as returned by the lead-finder collaborator."""

    profile_id: str = ""
    full_name: str
    first_name: str = ""
    last_name: str = ""
    job_title: str = ""
    company: str = ""
    company_id: str = ""
    linkedin_url: str = ""
    location: str = ""
    about: str = ""
    headline: str | None = None
    current_company: str | None = None
    current_title: str | None = None
    profile_picture: str = ""


class EmailContent(_StageResult):
    why_picked: str
    email_subject: str
    email_body: str


class QualifiedLead(BaseModel):
    id: str
    name: str
    first_name: str = ""
    last_name: str = ""
    title: str = ""
    company: str = ""
    linkedin_url: str = ""
    profile_picture_url: str = ""
    location: str = ""
    about: str = ""
    why_picked: str
    email_subject: str
    email_body: str
    is_fallback: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Campaign(BaseModel):
    """The assembled, validated result of one run; persisted by slug."""

    slug: str
    domain: str
    campaign_id: str | None = None
    company_name: str
    website_url: str
    location: str = "United States"
    helps_with: str = "grow their business"
    great_at: str = "finding qualified leads"
    icp_attributes: list[str] = Field(default_factory=list)
    qualified_leads: list[QualifiedLead] = Field(default_factory=list)
    company_profile: CompanyProfile
    icp_personas: list[ICPPersona] = Field(default_factory=list)
    persona_rankings: list[PersonaEvaluation] = Field(default_factory=list)
    linkedin_filters: LinkedInFilters
    status: Literal["draft", "active", "paused"] = "draft"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_record(self) -> dict[str, Any]:
        """Row-oriented representation handed to the persistence collaborator."""
        return self.model_dump(mode="json")


class CampaignRequest(BaseModel):
    """Input of one run. `slug` pins the campaign slug; otherwise one is derived from the domain."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    domain: str = Field(min_length=1)
    campaign_id: str | None = None
    slug: str | None = None

    @field_validator("domain")
    @classmethod
    def domain_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("domain must not be blank")
        return v

    @field_validator("campaign_id", "slug")
    @classmethod
    def safe_identifier(cls, v: str | None) -> str | None:
        if v is not None and not IDENTIFIER_PATTERN.fullmatch(v):
            raise ValueError("may only contain letters, digits, '-' and '_'")
        return v
