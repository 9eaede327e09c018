"""
Exceptions raised by the captioning pipeline.
Every error carries the upstream message so the API can return it unchanged.
"""


class PipelineError(Exception):
    """Base class for any failure that aborts a captioning job."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class TranscriptionError(PipelineError):
    """The speech-to-text service reported an error."""


class StorageError(PipelineError):
    """The source video could not be stored."""


class RenderError(PipelineError):
    """The rendering service reported a fatal error."""


class PollTimeoutError(PipelineError):
    """A remote job did not reach a terminal state within its bound."""


class RenderTimeoutError(RenderError, PollTimeoutError):
    """Polling gave up before the render finished."""


class JobCancelled(PipelineError):
    """The job was cancelled while waiting on a remote service."""


class ConfigurationError(PipelineError):
    """A required setting for the selected backend is missing."""
