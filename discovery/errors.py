"""Error types raised by the discovery pipeline."""
from __future__ import annotations


class CompletionError(Exception):
    """Base class for failures talking to the completion endpoint."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable


class AuthError(CompletionError):
    """No API credential is configured."""

    def __init__(self, message: str = "OPENROUTER_API_KEY is not configured"):
        super().__init__(message, None, False)


class RateLimitError(CompletionError):
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: float | None = None):
        super().__init__(message, 429, True)
        self.retry_after = retry_after


class ServerError(CompletionError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code, True)


class ClientError(CompletionError):
    """The request itself was rejected (4xx other than 429)."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error: {status_code} - {body}", status_code, False)
        self.body = body


class NetworkError(CompletionError):
    def __init__(self, message: str = "Network request failed. Please check your connection."):
        super().__init__(message, None, True)


class EmptyResponseError(CompletionError):
    """A successful response carried no usable completion."""

    def __init__(self, message: str = "No response from API"):
        super().__init__(message, None, False)


class ParseError(Exception):
    """Model output could not be turned into event records."""


class MalformedPayloadError(ParseError):
    pass


class JsonSyntaxError(ParseError):
    pass


class ValidationError(Exception):
    """A single event record failed field validation."""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class CooldownError(Exception):
    """A fetch arrived inside the global cooldown window."""

    def __init__(self, remaining_seconds: int):
        super().__init__(f"Please wait {remaining_seconds} seconds before refreshing events.")
        self.remaining_seconds = remaining_seconds
