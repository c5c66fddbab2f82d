"""
Exceptions raised inside the item pipeline.

Per-item failures never leave ItemPipeline.process(); these types let each
stage say *why* an item is skipped or retried.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class TranslationError(PipelineError):
    """An LLM attempt produced unusable output. Retriable."""


class ModelBusyError(TranslationError):
    """The model is rate limited or overloaded. Retried once on the fallback model."""


class TranslationTimeout(PipelineError):
    """Hard timeout talking to the LLM. Never retried."""


class TranslationExhausted(PipelineError):
    """Every attempt failed."""

    def __init__(self, attempts: int, last_error: str = ""):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"translation failed after {attempts} attempts: {last_error}")


class SkipItem(PipelineError):
    """The item must not be persisted."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PersistenceError(PipelineError):
    """The store rejected or timed out a write. The item is skipped."""
