"""Drive one model-backed stage: stream, extract partial fields, parse the result.

While tokens arrive the accumulated text is re-extracted at most once per
batching window and an `agent_token` event carries the pre-parsed fields, so
consumers never need partial-JSON logic of their own. When the stream ends
the first JSON object in the text is cleaned, parsed strictly and validated
against the stage's result model; a final `agent_token` with the full object
is emitted before the outcome is returned.

The runner persists nothing and retries nothing.
"""
import asyncio
import logging
import time
from contextlib import aclosing
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from models.events import AgentTokenEvent, StreamEvent
from models.stages import StageDefinition, StageOutcome
from pipeline.collaborators import ModelProvider
from pipeline.errors import PipelineError, ProviderError, StageParseError, StageTimeoutError
from utils.partial_json import extract_field_set, load_json_object

logger = logging.getLogger(__name__)

Emit = Callable[[StreamEvent], Awaitable[None]]


async def run_stage(
    definition: StageDefinition,
    prior_results: dict[str, Any],
    provider: ModelProvider,
    emit: Emit,
    *,
    batch_interval: float,
    timeout: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> StageOutcome:
    """Run `definition` to completion and return its outcome.

    Raises StageParseError, StageTimeoutError or ProviderError; the outcome
    is marked failed in every case before the error propagates.
    """
    outcome = StageOutcome(stage_name=definition.name, status="running")
    logger.info("[%s] started (max %d tokens)", definition.name, definition.max_output_tokens)

    try:
        prompt = definition.prompt_builder(prior_results)
        consume = _consume(definition, prompt, provider, emit, outcome, batch_interval, clock)
        if timeout is None:
            await consume
        else:
            try:
                await asyncio.wait_for(consume, timeout)
            except asyncio.TimeoutError as exc:
                raise StageTimeoutError(definition.name, timeout) from exc

        data, result = _parse_result(definition, outcome.raw_text)
    except Exception:
        outcome.finish("failed")
        logger.error("[%s] failed after %d tokens", definition.name, outcome.token_count)
        raise

    await emit(AgentTokenEvent(
        agent=definition.name,
        fields=data,
        field_count=len(data),
        token_count=outcome.token_count,
        is_final=True,
    ))
    outcome.parsed_result = result
    outcome.finish("complete")
    logger.info(
        "[%s] complete — %d tokens in %d ms",
        definition.name, outcome.token_count, outcome.duration_ms,
    )
    return outcome


async def _consume(
    definition: StageDefinition,
    prompt: str,
    provider: ModelProvider,
    emit: Emit,
    outcome: StageOutcome,
    batch_interval: float,
    clock: Callable[[], float],
) -> None:
    last_emit = clock()
    try:
        async with aclosing(provider.stream_completion(prompt, definition.max_output_tokens)) as stream:
            async for delta in stream:
                outcome.append(delta)

                now = clock()
                if now - last_emit < batch_interval:
                    continue
                snapshot = extract_field_set(
                    outcome.raw_text, definition.field_schema, outcome.token_count
                )
                logger.debug(
                    "[%s] %d fields after %d tokens",
                    definition.name, snapshot.field_count, snapshot.token_count,
                )
                await emit(AgentTokenEvent(
                    agent=definition.name,
                    fields=snapshot.fields,
                    field_count=snapshot.field_count,
                    token_count=snapshot.token_count,
                ))
                last_emit = now
    except PipelineError:
        raise
    except Exception as exc:
        raise ProviderError(f"[{definition.name}] Model provider stream failed: {exc}") from exc


def _parse_result(definition: StageDefinition, text: str) -> tuple[dict[str, Any], Any]:
    data = load_json_object(text)
    if data is None:
        raise StageParseError(definition.name, text)
    try:
        result = definition.result_model.model_validate(data)
    except ValidationError as exc:
        raise StageParseError(
            definition.name, text,
            reason=f"{exc.error_count()} validation error(s) for {definition.result_model.__name__}",
        ) from exc
    output = result.model_dump(mode="json", by_alias=True)
    return output, result
