"""
beatsmith/errors.py  ·  failure taxonomy + JSON bodies for the HTTP layer
"""
from __future__ import annotations


class StoryError(Exception):
    """Base for every failure a turn can end in.

    Each subclass knows its HTTP status and how to render itself, so the
    route layer only needs one exception handler.
    """
    category = "UnknownFailure"
    status_code = 500
    error = "Failed to generate story"
    free_tier_limit = False

    def __init__(self, message: str = "", *, details: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details if details is not None else self.message

    def to_body(self) -> dict:
        body = {"error": self.error, "details": self.details, "category": self.category}
        if self.free_tier_limit:
            body["message"] = self.message
            body["freeTierLimit"] = True
        return body


class RateLimited(StoryError):
    category = "RateLimited"
    status_code = 429
    error = "Rate limit exceeded"
    free_tier_limit = True

    def __init__(self, message: str, *, scope: str):
        super().__init__(message)
        self.scope = scope

    def to_body(self) -> dict:
        return {
            "error": self.error,
            "message": self.message,
            "freeTierLimit": True,
            "scope": self.scope,
            "category": self.category,
        }


class InvalidInput(StoryError):
    category = "InvalidInput"
    status_code = 400
    error = "Invalid request"


class Unauthorized(StoryError):
    category = "Unauthorized"
    status_code = 500
    error = (
        "Missing or invalid GEMINI_API_KEY. "
        "Check your .env file or deployment environment variables."
    )


class QuotaExhausted(StoryError):
    category = "QuotaExhausted"
    status_code = 429
    error = "FREE TIER LIMIT REACHED"
    free_tier_limit = True

    def __init__(self, details: str = ""):
        super().__init__(
            "You've reached the free tier quota. The app will stop working to "
            "prevent any charges. Please wait until the quota resets (usually daily).",
            details=details,
        )


class BillingDisabled(StoryError):
    category = "BillingDisabled"
    status_code = 403
    error = "FREE TIER ONLY"
    free_tier_limit = True

    def __init__(self, details: str = ""):
        super().__init__(
            "Billing is not enabled. The app uses only free tier models. "
            "If you see this error, the free quota may be exhausted.",
            details=details,
        )


class ModelUnavailable(StoryError):
    category = "ModelUnavailable"
    status_code = 500
    error = (
        "No available Gemini models for your API key. Check which models "
        "your Google AI Studio account can use."
    )

    def __init__(self, attempted: list[str], last_error: str = ""):
        self.attempted = list(attempted)
        super().__init__(
            f"No available Gemini models. Tried: {', '.join(self.attempted)}. "
            f"Last error: {last_error[:200]}"
        )


class MalformedOutput(StoryError):
    category = "MalformedOutput"

    def to_body(self) -> dict:
        return {**super().to_body(), "type": type(self).__name__}


class SchemaViolation(StoryError):
    category = "SchemaViolation"

    def __init__(self, message: str, *, location: str = ""):
        super().__init__(message)
        self.location = location

    def to_body(self) -> dict:
        return {**super().to_body(), "type": type(self).__name__}


class UnknownFailure(StoryError):
    category = "UnknownFailure"

    def __init__(self, message: str, *, error_type: str = "UnknownError"):
        super().__init__(message)
        self.error_type = error_type

    def to_body(self) -> dict:
        return {**super().to_body(), "type": self.error_type}
