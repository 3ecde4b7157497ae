"""
Errors raised by the generation pipeline and the tutor endpoints.

All are RuntimeError subclasses so callers that only know the
"RuntimeError → service unavailable" convention keep working.
Routes map them to HTTP status codes:

    GeneratorNotConfigured  → 503  (GOOGLE_API_KEY missing)
    UpstreamUnavailable     → 502  (first model call could not be made)
    ModelOutputError        → 502  (reply that must be JSON is not JSON at all)
"""


class GeneratorNotConfigured(RuntimeError):
    default_message = "GOOGLE_API_KEY is not configured. Add it to your environment or .env file."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class UpstreamUnavailable(RuntimeError):
    """The primary model call could not be established."""


class ModelOutputError(RuntimeError):
    """The model reply could not be parsed as JSON."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
