"""Error taxonomy for a pipeline run.

Every `PipelineError` that escapes a step ends the run with one terminal
`error` event, except `PersistenceError`, which the orchestrator reports and
then completes anyway. `TransportWriteError` never leaves the transport.
"""

_EXCERPT_CHARS = 200


class PipelineError(Exception):
    """Base class for errors that end (or are reported by) a run."""


class StageParseError(PipelineError):
    """The model output of a stage never resolved to a valid JSON object."""

    def __init__(self, stage_name: str, text: str, reason: str = "no valid JSON object"):
        self.stage_name = stage_name
        self.excerpt = text[:_EXCERPT_CHARS]
        super().__init__(f"[{stage_name}] Failed to parse response: {reason}")


class StageTimeoutError(PipelineError):
    def __init__(self, stage_name: str, timeout: float):
        self.stage_name = stage_name
        self.timeout = timeout
        super().__init__(f"[{stage_name}] No complete response within {timeout:g}s")


class ProviderError(PipelineError):
    """The model provider rejected the request or its stream broke."""


class ScrapeError(PipelineError):
    pass


class PersistenceError(PipelineError):
    pass


class TransportWriteError(Exception):
    """A write to a push channel whose reader has gone away."""
