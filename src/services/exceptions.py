"""Shared exceptions for service layer operations."""


class DuplicateUrlError(Exception):
    """Raised when a bookmark with the same URL already exists for the user."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"A bookmark with URL '{url}' already exists")


class SummaryPipelineError(Exception):
    """
    Base class for typed failures of the summary pipeline.

    Each subclass carries the machine-readable ``error_code`` that the API
    returns alongside the message.
    """

    error_code = "SUMMARY_GENERATION_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidCredentialError(SummaryPipelineError):
    """Raised when the language-model API key is missing, malformed or rejected."""

    error_code = "INVALID_API_KEY"

    def __init__(self, message: str, *, missing: bool = False) -> None:
        super().__init__(message)
        self.missing = missing
        if missing:
            self.error_code = "API_KEY_REQUIRED"


class NoValidSourcesError(SummaryPipelineError):
    """Raised when none of the requested bookmark ids resolves to a bookmark of the user."""

    error_code = "BOOKMARKS_NOT_FOUND"

    def __init__(self, requested: int) -> None:
        self.requested = requested
        super().__init__(f"No valid bookmarks found among the {requested} requested")


class ContentExtractionFailedError(SummaryPipelineError):
    """
    Raised when no URL of a batch yielded readable content.

    Carries the number of URLs attempted and up to three distinct failure
    reasons so the caller can decide whether retrying with other sources
    makes sense.
    """

    error_code = "CONTENT_EXTRACTION_FAILED"

    def __init__(self, attempted: int, reasons: list[str]) -> None:
        self.attempted = attempted
        self.reasons = reasons
        message = (
            f"Could not extract readable content from any of the {attempted} URLs. "
            "Please ensure the URLs contain accessible text content."
        )
        if reasons:
            message += " Reasons: " + "; ".join(reasons)
        super().__init__(message)


class SummarizationFailedError(SummaryPipelineError):
    """Raised when the language model could not produce a response."""

    error_code = "SUMMARIZATION_FAILED"
