"""Stage contracts shared by the stage runner, the orchestrator and the extractor."""
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

FieldKind = Literal["string", "array", "object"]
StageStatus = Literal["pending", "running", "complete", "failed"]
RunStatus = Literal["running", "persisting", "complete", "failed"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldDef(BaseModel):
    """One named field the extractor looks for in a stage's streamed JSON."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: FieldKind


class StageDefinition(BaseModel):
    """A single model-backed generation stage.

    `prompt_builder` receives the parsed results of every earlier stage,
    keyed by stage name, and returns the prompt text. `result_model`
    validates the final JSON object; `summarize` turns the validated result
    into the short human-readable string carried by `agent_complete`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    message: str
    prompt_builder: Callable[[dict[str, Any]], str]
    max_output_tokens: int = Field(gt=0)
    field_schema: tuple[FieldDef, ...] = ()
    result_model: type[BaseModel]
    start_progress: int = Field(ge=0, le=100)
    complete_progress: int = Field(ge=0, le=100)
    summarize: Callable[[Any], str]
    details: Callable[[Any], list[str]] | None = None


class StageOutcome(BaseModel):
    """Mutable record of one stage within a run. Owned by the orchestrator."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stage_name: str
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    duration_ms: int | None = None
    raw_text: str = ""
    token_count: int = 0
    parsed_result: Any = None
    status: StageStatus = "pending"

    def append(self, delta: str) -> None:
        self.raw_text += delta
        self.token_count += 1

    def finish(self, status: StageStatus) -> None:
        self.status = status
        self.completed_at = _utcnow()
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)


class PipelineRun(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str
    domain: str
    slug: str | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    stages: list[StageOutcome] = Field(default_factory=list)
    status: RunStatus = "running"
    progress: int = 0

    def outcome(self, stage_name: str) -> StageOutcome | None:
        return next((s for s in self.stages if s.stage_name == stage_name), None)

    def results(self) -> dict[str, Any]:
        """Parsed results of every completed stage, keyed by stage name."""
        return {s.stage_name: s.parsed_result for s in self.stages if s.status == "complete"}

    def advance(self, progress: int) -> int:
        """Move progress forward; never backwards."""
        self.progress = max(self.progress, progress)
        return self.progress


class ExtractedFieldSet(BaseModel):
    """One extraction snapshot. Recomputed from the buffer on every pass."""

    fields: dict[str, Any] = Field(default_factory=dict)
    field_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)
    is_final: bool = False
