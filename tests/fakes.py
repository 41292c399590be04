"""Hand-written collaborators and canned model replies shared by the tests."""
import asyncio
import json

from models.campaign import Lead, ScrapedWebsite

# ---------------------------------------------------------------------------
# Canned stage replies (camelCase, as the model is asked to produce them)
# ---------------------------------------------------------------------------

PROFILE = {
    "name": "Acme",
    "domain": "acme.com",
    "tagline": "Widgets for everyone",
    "productOrService": "Widget procurement software",
    "problemTheySolve": "Slow widget procurement",
    "howTheySolveIt": "One-click ordering",
    "targetMarket": "Mid-size manufacturers",
    "caseStudiesOrTestimonials": ["Globex cut ordering time by 40%"],
    "industry": "Manufacturing",
    "competitiveAdvantage": "Speed",
    "pricingModel": "SMB",
}

BRAINSTORM = {
    "personas": [
        {
            "id": "icp_a",
            "name": "The Buyer",
            "titles": ["Procurement Manager", "Purchasing Lead"],
            "companySize": "50-200",
            "industries": ["Manufacturing"],
            "painPoints": ["Manual purchase orders"],
            "goals": ["Lower cost per order"],
        },
        {
            "id": "icp_b",
            "name": "The Ops Lead",
            "titles": ["Head of Operations"],
            "companySize": "200-500",
            "industries": ["Logistics"],
            "painPoints": ["Stock-outs"],
            "goals": ["Predictable supply"],
        },
    ],
    "reasoning": "Both own the ordering workflow",
}

RANKING = {
    "evaluations": [
        {"personaId": "icp_a", "personaName": "The Buyer", "overallScore": 6.5},
        {"personaId": "icp_b", "personaName": "The Ops Lead", "overallScore": 8.0},
    ],
    "selectedPersonaId": "icp_b",
    "selectedPersonaName": "The Ops Lead",
    "selectionReasoning": "Ops leads answer cold email",
}

FILTERS = {
    "titles": ["Head of Operations"],
    "companySize": "200-500",
    "industries": [{"id": "96", "text": "IT Services"}],
    "locations": [{"id": "101165590", "text": "United Kingdom"}],
}

EMAIL = {
    "whyPicked": "Runs operations at a growing manufacturer",
    "emailSubject": "ordering delays",
    "emailBody": "Hi {{first_name}},\n\nAre stock-outs slowing {{company}} down?\n\nBest,\nBella",
}

# Prompt markers, one per stage prompt
PROFILER_MARKER = "company research analyst"
BRAINSTORMER_MARKER = "sales strategist"
RANKER_MARKER = "cold email expert"
FILTERS_MARKER = "Sales Navigator filters"
EMAIL_MARKER = "You are writing a cold email"


def fenced(data: dict) -> str:
    """A reply the way models often send it: prose plus a fenced JSON block."""
    return f"Here is the result:\n```json\n{json.dumps(data, indent=2)}\n```\nLet me know if you need more."


def default_replies() -> dict:
    return {
        PROFILER_MARKER: fenced(PROFILE),
        BRAINSTORMER_MARKER: fenced(BRAINSTORM),
        RANKER_MARKER: fenced(RANKING),
        FILTERS_MARKER: fenced(FILTERS),
        EMAIL_MARKER: fenced(EMAIL),
    }


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class ScriptedProvider:
    """Model provider whose reply is chosen by a marker found in the prompt.

    A reply that is an exception instance is raised when the stream opens.
    """

    def __init__(self, replies: dict, chunk_size: int = 7):
        self.replies = replies
        self.chunk_size = chunk_size
        self.prompts: list[str] = []

    def prompts_with(self, marker: str) -> list[str]:
        return [p for p in self.prompts if marker in p]

    async def stream_completion(self, prompt: str, max_tokens: int):
        self.prompts.append(prompt)
        reply = next((r for marker, r in self.replies.items() if marker in prompt), None)
        if reply is None:
            raise AssertionError(f"No scripted reply for prompt: {prompt[:80]!r}")
        if isinstance(reply, Exception):
            raise reply
        for i in range(0, len(reply), self.chunk_size):
            await asyncio.sleep(0)
            yield reply[i:i + self.chunk_size]


class ChunkProvider:
    """Streams a fixed list of deltas, optionally failing after them."""

    def __init__(self, chunks: list[str], error: Exception | None = None, delay: float = 0.0):
        self.chunks = chunks
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, int]] = []
        self.closed = False

    async def stream_completion(self, prompt: str, max_tokens: int):
        self.calls.append((prompt, max_tokens))
        try:
            for chunk in self.chunks:
                await asyncio.sleep(self.delay)
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class FakeScraper:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.urls: list[str] = []

    async def scrape(self, url: str) -> ScrapedWebsite:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return ScrapedWebsite(
            url=url,
            title="Acme | Widget procurement",
            description="Order widgets in one click",
            markdown="Acme helps manufacturers order widgets.",
        )


class FakeLeadFinder:
    def __init__(self, leads: list[Lead] | None = None, error: Exception | None = None):
        self.leads = leads if leads is not None else [make_lead(i) for i in range(3)]
        self.error = error
        self.calls = []

    async def find_leads(self, filters, limit):
        self.calls.append((filters, limit))
        if self.error is not None:
            raise self.error
        return self.leads[:limit]


class FakeStore:
    def __init__(self, slugs=(), error: Exception | None = None):
        self.slugs = list(slugs)
        self.error = error
        self.records: dict[str, dict] = {}
        self.upserts: list[str] = []

    async def upsert(self, identifier, record):
        self.upserts.append(identifier)
        if self.error is not None:
            raise self.error
        self.records[identifier] = record

    def list_slugs(self):
        return list(self.slugs)


class EventRecorder:
    """Async publish callback that keeps every event it receives."""

    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [e.event for e in self.events]

    def for_agent(self, agent: str) -> list:
        return [e for e in self.events if getattr(e, "agent", None) == agent]

    def of_type(self, name: str) -> list:
        return [e for e in self.events if e.event == name]


def make_lead(i: int, **overrides) -> Lead:
    data = dict(
        profile_id=f"p{i}",
        full_name=f"Lead {i}",
        first_name="Lead",
        last_name=str(i),
        job_title="Head of Operations",
        company=f"Company {i} Ltd",
        linkedin_url=f"https://linkedin.com/in/lead-{i}",
        location="London",
    )
    data.update(overrides)
    return Lead(**data)
