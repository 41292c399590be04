"""Personalised cold-email generation for a batch of leads.

Leads are processed in fixed-size concurrent groups. Each lead is isolated:
if its generation or parse fails it receives a deterministic fallback email
instead, so the batch always returns one record per lead, in input order.
"""
import asyncio
import logging
import re
from typing import Awaitable, Callable

from pydantic import BaseModel

from models.campaign import CompanyProfile, EmailContent, ICPPersona, Lead, QualifiedLead
from pipeline.collaborators import ModelProvider, collect_completion
from pipeline.errors import StageParseError
from utils.partial_json import load_json_object

logger = logging.getLogger(__name__)

_EMAIL_MAX_TOKENS = 512
_STAGE_NAME = "Email Writer"

# Checked in order; longer forms first. A suffix must follow a comma or whitespace.
_LEGAL_SUFFIXES = tuple(re.compile(r"(?:,\s*|\s+)" + p + r"$", re.IGNORECASE) for p in (
    r"Pty\.?\s*Ltd\.?",
    r"(?:L\.?L\.?C\.?|LLC)\.?",
    r"(?:Inc\.?|Incorporated)",
    r"(?:Corp\.?|Corporation)",
    r"(?:Ltd\.?|Limited)",
    r"(?:L\.?L\.?P\.?|LLP)\.?",
    r"(?:P\.?L\.?L\.?C\.?|PLLC)\.?",
    r"(?:P\.?C\.?|PC)\.?",
    r"Co\.?",
    r"S\.?A\.?",
    r"GmbH",
    r"B\.?V\.?",
))

_ABOUT_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"\bAs (?:a |an |the )?(.+?)\s+(?:for|at|with)\s+([A-Z][A-Za-z0-9\s&.,'-]+?)(?:,|\.|I\s|where|helping|serving|\n|$)",
    r"\bI (?:am|serve as|work as) (?:a |an |the )?(.+?)\s+(?:at|for|with)\s+([A-Z][A-Za-z0-9\s&.,'-]+?)(?:,|\.|where|helping|\n|$)",
    r"\bCurrently(?:,)?\s+(?:a |an |the )?(.+?)\s+(?:at|for|with)\s+([A-Z][A-Za-z0-9\s&.,'-]+?)(?:,|\.|where|\n|$)",
))

_HEADLINE_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"^(.+?)\s+at\s+(.+?)(?:\s*[|•]|$)",
    r"^(.+?)\s*@\s*(.+?)(?:\s*[|•]|$)",
    r"^(.+?)\s*\|\s*(.+?)(?:\s*[|•]|$)",
))


class EmailWriterContext(BaseModel):
    sender_company: str
    company_profile: CompanyProfile | None = None
    selected_persona: ICPPersona | None = None
    selection_reasoning: str = ""


def normalize_company_name(name: str) -> str:
    """'Acme, Inc.' → 'Acme'. Legal suffixes read badly in casual copy."""
    if not name:
        return name
    normalized = name.strip()
    for suffix in _LEGAL_SUFFIXES:
        normalized = suffix.sub("", normalized)
    return normalized.strip()


def extract_primary_position(lead: Lead) -> tuple[str, str]:
    """Return (title, company) of the lead's primary role.

    Lead sources sometimes match a secondary position (board seat, side
    project). Priority: the "about" text, then the headline, then the
    current_* fields, then the matched position.
    """
    if lead.about:
        for pattern in _ABOUT_PATTERNS:
            match = pattern.search(lead.about)
            if match and match.group(2).strip().lower() != lead.company.lower():
                return match.group(1).strip(), match.group(2).strip()

    if lead.headline:
        for pattern in _HEADLINE_PATTERNS:
            match = pattern.search(lead.headline)
            if match:
                return match.group(1).strip(), match.group(2).strip()

    if lead.current_company and lead.current_title:
        return lead.current_title, lead.current_company

    return lead.job_title, lead.company


def build_email_prompt(lead: Lead, context: EmailWriterContext, sender_name: str) -> str:
    title, company = extract_primary_position(lead)
    sender = normalize_company_name(context.sender_company)
    profile = context.company_profile

    if profile is not None:
        proof = "\n".join(f"- {cs}" for cs in profile.case_studies_or_testimonials)
        company_section = (
            "## Deep Company Context\n\n"
            f"Company Name: {normalize_company_name(profile.name)}\n"
            f"Tagline: {profile.tagline}\n"
            f"What They Sell: {profile.product_or_service}\n"
            f"Problem They Solve: {profile.problem_they_solve}\n"
            f"How They Solve It: {profile.how_they_solve_it}\n"
            f"Target Market: {profile.target_market}\n"
            f"Competitive Advantage: {profile.competitive_advantage}\n"
        )
        if proof:
            company_section += f"\nProof Points (use for social proof):\n{proof}\n"
    else:
        company_section = f"About the sender's company:\n- Name: {sender}\n"

    persona_section = ""
    persona = context.selected_persona
    if persona is not None:
        persona_section = (
            "## Why We're Targeting This Type of Person\n\n"
            f"Persona: {persona.name}\n"
            f"Their Pain Points: {', '.join(persona.pain_points)}\n"
            f"Their Goals: {', '.join(persona.goals)}\n"
            f"What They Value: {persona.value_they_seek}\n"
            f"Buying Triggers: {', '.join(persona.buying_triggers)}\n"
        )
        if context.selection_reasoning:
            persona_section += f"\nWhy this persona is best for cold email: {context.selection_reasoning}\n"

    return f"""\
You are writing a cold email for {sender}.

{company_section}
{persona_section}
## About the Recipient

- Name: {lead.full_name}
- Title: {title}
- Company: {normalize_company_name(company)}
- Location: {lead.location}
- Their LinkedIn About: {lead.about or 'Not available'}

## Email Requirements

Write a short (under 100 words) personalised cold email. No flattery. Open
with a pain point or direct question relevant to their role, connect it to
the sender's solution and end with a soft CTA. The subject line is 2-4 words,
lowercase, and reads like it came from a colleague.

Respond ONLY with valid JSON:
{{
  "whyPicked": "Why this person is a good lead for this company",
  "emailSubject": "quick question",
  "emailBody": "Hi {{{{first_name}}}},\\n\\nEmail body here...\\n\\nBest,\\n{sender_name}"
}}

Use {{{{first_name}}}} and {{{{company}}}} as placeholders in the email body.
Never include legal suffixes like LLC, Inc., Corp. or Ltd. in company names."""


def fallback_email(lead: Lead, context: EmailWriterContext, sender_name: str) -> EmailContent:
    """Deterministic template used when generation for a lead fails."""
    title, company = extract_primary_position(lead)
    sender = normalize_company_name(context.sender_company)
    profile = context.company_profile
    helps_with = (profile.problem_they_solve if profile else "") or "finding qualified leads"
    return EmailContent(
        why_picked=f"{title or 'Decision maker'} at {normalize_company_name(company) or 'their company'} "
                   "matches the target persona.",
        email_subject="quick question",
        email_body=(
            "Hi {{first_name}},\n\n"
            f"{sender} helps teams like {{{{company}}}} with {helps_with[:1].lower()}{helps_with[1:]}.\n\n"
            "Would it make sense to chat for 15 minutes next week?\n\n"
            f"Best,\n{sender_name}"
        ),
    )


async def generate_email_for_lead(
    lead: Lead,
    context: EmailWriterContext,
    provider: ModelProvider,
    sender_name: str,
) -> EmailContent:
    text = await collect_completion(
        provider, build_email_prompt(lead, context, sender_name), _EMAIL_MAX_TOKENS
    )
    data = load_json_object(text)
    if data is None:
        raise StageParseError(_STAGE_NAME, text)
    return EmailContent.model_validate(data)


async def generate_emails_for_leads(
    leads: list[Lead],
    context: EmailWriterContext,
    provider: ModelProvider,
    *,
    batch_size: int,
    max_leads: int,
    sender_name: str,
    on_batch: Callable[[list[QualifiedLead]], Awaitable[None]] | None = None,
) -> list[QualifiedLead]:
    """Generate one QualifiedLead per lead (up to `max_leads`), `batch_size` at a time.

    `on_batch` is awaited after each group with everything produced so far.
    """
    to_process = leads[:max_leads]
    logger.info("Generating %d emails in groups of %d", len(to_process), batch_size)

    qualified: list[QualifiedLead] = []
    for start in range(0, len(to_process), batch_size):
        group = to_process[start:start + batch_size]
        qualified.extend(await asyncio.gather(*(
            _qualify(lead, start + offset, context, provider, sender_name)
            for offset, lead in enumerate(group)
        )))
        if on_batch is not None:
            await on_batch(qualified)

    fallbacks = sum(1 for q in qualified if q.is_fallback)
    logger.info("  Emails: %d generated, %d fallback", len(qualified) - fallbacks, fallbacks)
    return qualified


async def _qualify(
    lead: Lead,
    index: int,
    context: EmailWriterContext,
    provider: ModelProvider,
    sender_name: str,
) -> QualifiedLead:
    is_fallback = False
    try:
        email = await generate_email_for_lead(lead, context, provider, sender_name)
    except Exception as exc:
        logger.warning("  [%s] email generation failed — using fallback: %s", lead.full_name, exc)
        email = fallback_email(lead, context, sender_name)
        is_fallback = True

    title, company = extract_primary_position(lead)
    return QualifiedLead(
        id=lead.profile_id or f"lead-{index + 1}",
        name=lead.full_name,
        first_name=lead.first_name,
        last_name=lead.last_name,
        title=title,
        company=normalize_company_name(company),
        linkedin_url=lead.linkedin_url,
        profile_picture_url=lead.profile_picture,
        location=lead.location,
        about=lead.about,
        why_picked=email.why_picked,
        email_subject=email.email_subject,
        email_body=email.email_body,
        is_fallback=is_fallback,
    )
