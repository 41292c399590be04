"""Push-channel event catalogue.

Every event a run emits is one of the models below. The `event` field is the
discriminator and doubles as the SSE event name; the remaining fields are the
JSON payload, serialized with camelCase keys.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

# Step names, as carried in the `agent` field, in run order.
WEBSITE_SCRAPER = "Website Scraper"
COMPANY_PROFILER = "Company Profiler"
ICP_BRAINSTORMER = "ICP Brainstormer"
COLD_EMAIL_RANKER = "Cold Email Ranker"
LINKEDIN_FILTER_BUILDER = "LinkedIn Filter Builder"
LEAD_FINDER = "Lead Finder"
EMAIL_WRITER = "Email Writer"

AGENT_ORDER = (
    WEBSITE_SCRAPER,
    COMPANY_PROFILER,
    ICP_BRAINSTORMER,
    COLD_EMAIL_RANKER,
    LINKEDIN_FILTER_BUILDER,
    LEAD_FINDER,
    EMAIL_WRITER,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def payload(self) -> dict[str, Any]:
        """JSON-ready payload for the `data:` line (discriminator excluded)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"event"})


class StartEvent(_WireModel):
    event: Literal["start"] = "start"
    pipeline_id: str
    domain: str
    slug: str
    started_at: str


class AgentStartEvent(_WireModel):
    event: Literal["agent_start"] = "agent_start"
    agent: str
    message: str
    progress: int = Field(ge=0, le=100)


class AgentTokenEvent(_WireModel):
    event: Literal["agent_token"] = "agent_token"
    agent: str
    fields: dict[str, Any] = Field(default_factory=dict)
    field_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)
    is_final: bool = False


class AgentCompleteEvent(_WireModel):
    event: Literal["agent_complete"] = "agent_complete"
    agent: str
    duration: int = Field(ge=0)  # milliseconds
    result: str
    output: Any = None
    details: list[str] | None = None
    progress: int = Field(ge=0, le=100)


class CompleteEvent(_WireModel):
    event: Literal["complete"] = "complete"
    slug: str
    campaign: dict[str, Any]
    progress: int = 100
    message: str = "Campaign generated successfully!"
    persisted: bool = True


class ErrorEvent(_WireModel):
    event: Literal["error"] = "error"
    message: str
    fatal: bool = True


StreamEvent = Annotated[
    Union[
        StartEvent,
        AgentStartEvent,
        AgentTokenEvent,
        AgentCompleteEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="event"),
]

_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def parse_stream_event(name: str, data: dict[str, Any]) -> StreamEvent:
    """Rebuild a typed event from its wire name and decoded payload.

    Raises pydantic.ValidationError for unknown names or malformed payloads.
    """
    return _adapter.validate_python({**data, "event": name})


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, CompleteEvent) or (isinstance(event, ErrorEvent) and event.fatal)
