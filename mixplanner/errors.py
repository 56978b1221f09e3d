"""
Error taxonomy for Mix Planner.

Every error surfaced to a caller is a MixError subclass so callers can tell
configuration mistakes (fatal, fix the arguments) from resource and stream
failures (possibly transient, worth a retry).
"""


class MixError(Exception):
    """Base class for all mix failures."""

    retryable = False


class ConfigurationError(MixError, ValueError):
    """
    Bad arguments or settings.

    Raised before any decoder, filter or encoder is opened.
    """


class ResourceError(MixError):
    """Failure opening or starting a decoder, filter engine or encoder."""

    retryable = True


class StreamError(MixError):
    """
    Failure while decoding or encoding mid-stream.

    Attributes:
        stream_index: Input index for decode failures, None for encoder failures
    """

    retryable = True

    def __init__(self, message: str, stream_index=None):
        super().__init__(message)
        self.stream_index = stream_index


class CleanupError(MixError):
    """
    Failure while releasing a resource.

    Logged and collected on the result; never raised to the caller.
    """

    def __init__(self, resource: str, cause: BaseException):
        super().__init__(f"Error releasing {resource}: {cause}")
        self.resource = resource
        self.cause = cause
