"""Exception hierarchy for the analysis pipeline."""

from typing import Optional


class ChatLensError(Exception):
    """Base class for every error raised by chatlens."""


class InputValidationError(ChatLensError):
    """Submitted request is unusable (empty content, missing purpose)."""


class ProviderError(ChatLensError):
    """An AI provider call failed at the transport or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class RateLimitError(ProviderError):
    """Provider answered 429 / RESOURCE_EXHAUSTED."""


class ResponseParseError(ChatLensError):
    """Provider output could not be turned into the expected structure."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class SummarizationError(ChatLensError):
    """Pattern summary failed after all attempts."""


class PipelineError(ChatLensError):
    """The full analysis path could not produce a report."""


class TokenBudgetError(ChatLensError, AssertionError):
    """A planned deep-analysis batch exceeds the token budget."""


class JobNotFoundError(ChatLensError):
    """No job with the requested id."""


class JobStateError(ChatLensError):
    """Update attempted on a job that already reached a terminal state."""
