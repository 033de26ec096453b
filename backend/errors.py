"""Exceptions raised by the resolution and search pipeline."""


class PipelineError(Exception):
    pass


class ConfigurationError(PipelineError):
    """Missing API key or unknown provider. Fatal: never recovered by fallback."""


class UpstreamError(PipelineError):
    """A provider answered with a non-success status or a malformed payload."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status


class SearchFailedError(PipelineError):
    """Every query of a search plan failed."""


class AIResponseError(PipelineError):
    """An AI reply held no parseable JSON object."""
