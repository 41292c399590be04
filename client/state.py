"""Coarse render state of a streaming run.

Only rare events (start, agent_start, agent_complete, complete, error) move
this state. `agent_token` is deliberately ignored here; its field data goes
to the FieldSubscriptionStore instead.
"""
from typing import Any

from pydantic import BaseModel, Field

from models.events import (
    AGENT_ORDER,
    AgentCompleteEvent,
    AgentStartEvent,
    AgentTokenEvent,
    CompleteEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
)
from models.stages import StageStatus


class AgentState(BaseModel):
    name: str
    status: StageStatus = "pending"
    message: str = ""
    progress: int = 0
    duration_ms: int | None = None
    result: str | None = None
    output: Any = None
    details: list[str] | None = None


class StreamingState(BaseModel):
    is_streaming: bool = False
    run_id: str | None = None
    domain: str | None = None
    slug: str | None = None
    current_agent: str | None = None
    progress: int = 0
    agents: dict[str, AgentState] = Field(default_factory=dict)
    campaign: dict[str, Any] | None = None
    error: str | None = None
    warning: str | None = None


def initial_state(agent_names: tuple[str, ...] = AGENT_ORDER) -> StreamingState:
    return StreamingState(agents={name: AgentState(name=name) for name in agent_names})


def is_render_event(event: StreamEvent) -> bool:
    return not isinstance(event, AgentTokenEvent)


def reduce(state: StreamingState, event: StreamEvent) -> StreamingState:
    """Return the state after `event`. The input state is never mutated."""
    if isinstance(event, StartEvent):
        return state.model_copy(update={
            "is_streaming": True,
            "run_id": event.pipeline_id,
            "domain": event.domain,
            "slug": event.slug,
            "error": None,
            "warning": None,
        })

    if isinstance(event, AgentStartEvent):
        agents = dict(state.agents)
        agents[event.agent] = AgentState(
            name=event.agent, status="running", message=event.message, progress=event.progress,
        )
        return state.model_copy(update={
            "agents": agents,
            "current_agent": event.agent,
            "progress": max(state.progress, event.progress),
        })

    if isinstance(event, AgentCompleteEvent):
        agents = dict(state.agents)
        previous = agents.get(event.agent) or AgentState(name=event.agent)
        agents[event.agent] = previous.model_copy(update={
            "status": "complete",
            "progress": event.progress,
            "duration_ms": event.duration,
            "result": event.result,
            "output": event.output,
            "details": event.details,
        })
        return state.model_copy(update={
            "agents": agents,
            "progress": max(state.progress, event.progress),
        })

    if isinstance(event, CompleteEvent):
        return state.model_copy(update={
            "is_streaming": False,
            "current_agent": None,
            "progress": event.progress,
            "slug": event.slug,
            "campaign": event.campaign,
        })

    if isinstance(event, ErrorEvent):
        if not event.fatal:
            return state.model_copy(update={"warning": event.message})
        agents = dict(state.agents)
        current = agents.get(state.current_agent) if state.current_agent else None
        if current is not None and current.status == "running":
            agents[current.name] = current.model_copy(update={"status": "failed"})
        return state.model_copy(update={
            "is_streaming": False,
            "agents": agents,
            "error": event.message,
        })

    return state
