"""
beatsmith/llm.py  ·  provider client + error classifier + model fallback

Gemini is reached through its OpenAI-compatible endpoint, so the stock
``openai`` SDK does the transport.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Optional, Sequence

from openai import OpenAI

from .config import Settings
from .errors import (
    BillingDisabled,
    ModelUnavailable,
    QuotaExhausted,
    Unauthorized,
    UnknownFailure,
)

logger = logging.getLogger(__name__)

Invoke = Callable[[str, str], str]


class EmptyResponse(Exception):
    """The model answered but produced no text."""


class FailureKind(enum.Enum):
    AVAILABILITY = "availability"        # this model only; try the next one
    AUTHORIZATION = "authorization"      # account-level from here down
    QUOTA = "quota"
    BILLING = "billing"
    UNKNOWN = "unknown"


# ────────── classifier ──────────
_STATUS_KINDS = {
    404: FailureKind.AVAILABILITY,
    401: FailureKind.AUTHORIZATION,
    429: FailureKind.QUOTA,
}

_CODE_KINDS = {
    "NOT_FOUND": FailureKind.AVAILABILITY,
    "MODEL_NOT_FOUND": FailureKind.AVAILABILITY,
    "API_KEY_INVALID": FailureKind.AUTHORIZATION,
    "API_KEY_NOT_FOUND": FailureKind.AUTHORIZATION,
    "PERMISSION_DENIED": FailureKind.AUTHORIZATION,
    "UNAUTHENTICATED": FailureKind.AUTHORIZATION,
    "INVALID_API_KEY": FailureKind.AUTHORIZATION,
    "RESOURCE_EXHAUSTED": FailureKind.QUOTA,
    "RATE_LIMIT_EXCEEDED": FailureKind.QUOTA,
    "INSUFFICIENT_QUOTA": FailureKind.QUOTA,
    "BILLING_NOT_ENABLED": FailureKind.BILLING,
}

# first match wins, so billing is tested before the broader quota words
_MESSAGE_KINDS = (
    (("404", "not found", "not supported"), FailureKind.AVAILABILITY),
    (("api key", "api_key", "permission_denied"), FailureKind.AUTHORIZATION),
    (("billing", "payment"), FailureKind.BILLING),
    (("quota", "rate limit", "resource_exhausted", "too many requests"), FailureKind.QUOTA),
)


def _status_of(exc: BaseException) -> Optional[int]:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _codes_of(exc: BaseException) -> list[str]:
    codes = [getattr(exc, "code", None), getattr(exc, "type", None)]
    body = getattr(exc, "body", None)
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict):
            codes += [inner.get("status"), inner.get("code"), inner.get("reason")]
    return [str(c).upper() for c in codes if isinstance(c, str) and c]


def classify_error(exc: BaseException) -> FailureKind:
    """Map a provider exception onto FailureKind.

    Priority: HTTP status, then named code fields, then message text.
    Anything that matches none of them is UNKNOWN.
    """
    if isinstance(exc, EmptyResponse):
        return FailureKind.AVAILABILITY

    status = _status_of(exc)
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]

    for code in _codes_of(exc):
        if code in _CODE_KINDS:
            return _CODE_KINDS[code]

    message = str(exc).lower()
    for needles, kind in _MESSAGE_KINDS:
        if any(n in message for n in needles):
            return kind
    return FailureKind.UNKNOWN


# ────────── provider ──────────
class GeminiClient:
    """invoke(model_id, prompt) -> text over the OpenAI-compatible API."""

    def __init__(self, settings: Settings, client: Any = None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.settings.GEMINI_API_KEY:
                raise Unauthorized(
                    details="GEMINI_API_KEY environment variable is not set"
                )
            key = self.settings.describe_key()
            logger.info(
                "creating Gemini client (key length %d, prefix %s)",
                key["keyLength"], key["keyPrefix"],
            )
            self._client = OpenAI(
                api_key     = self.settings.GEMINI_API_KEY,
                base_url    = self.settings.GEMINI_BASE_URL,
                timeout     = self.settings.MODEL_TIMEOUT_SECONDS,
                max_retries = 0,
            )
        return self._client

    def invoke(self, model_id: str, prompt: str) -> str:
        rsp = self.client.chat.completions.create(
            model           = model_id,
            messages        = [{"role": "user", "content": prompt}],
            response_format = {"type": "json_object"},
            max_tokens      = self.settings.MAX_OUTPUT_TOKENS,
            temperature     = self.settings.TEMPERATURE,
        )
        if not rsp.choices:
            return ""
        return rsp.choices[0].message.content or ""


# ────────── fallback driver ──────────
class ModelFallbackDriver:
    """Walk the model list once, front to back.

    Availability failures move on to the next model; account-level failures
    stop the walk; unrecognised failures surface as UnknownFailure.
    """

    def __init__(self, models: Sequence[str], invoke: Invoke):
        if not models:
            raise ValueError("at least one model id is required")
        self.models = list(models)
        self.invoke = invoke

    def generate(self, prompt: str) -> str:
        attempted: list[str] = []
        last_error = ""

        for model_id in self.models:
            attempted.append(model_id)
            logger.info("attempting model %s", model_id)
            try:
                text = self.invoke(model_id, prompt)
                if not text or not text.strip():
                    raise EmptyResponse(f"No content in response from {model_id}")
            except (Unauthorized, QuotaExhausted, BillingDisabled):
                raise
            except Exception as exc:
                kind = classify_error(exc)
                last_error = str(exc)
                logger.warning(
                    "model %s failed (%s, status=%s): %s",
                    model_id, kind.value, _status_of(exc), last_error[:200],
                )
                if kind is FailureKind.AVAILABILITY:
                    logger.info("[fallback] %s not available, trying next model", model_id)
                    continue
                if kind is FailureKind.AUTHORIZATION:
                    raise Unauthorized(details=last_error) from exc
                if kind is FailureKind.QUOTA:
                    raise QuotaExhausted(details=last_error) from exc
                if kind is FailureKind.BILLING:
                    raise BillingDisabled(details=last_error) from exc
                raise UnknownFailure(last_error, error_type=type(exc).__name__) from exc

            logger.info("received %d chars from %s", len(text), model_id)
            return text

        logger.error("all models exhausted: %s", ", ".join(attempted))
        raise ModelUnavailable(attempted, last_error)
