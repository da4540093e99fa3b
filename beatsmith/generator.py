"""
beatsmith/generator.py  ·  one turn: admit → compose → generate → parse → validate
"""
from __future__ import annotations

import enum
import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from .errors import MalformedOutput, RateLimited, SchemaViolation
from .governor import RateGovernor
from .llm import ModelFallbackDriver
from .models import StoryRequest, StoryResponse
from .prompts import HISTORY_WINDOW, compose, repair_instruction

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[\w-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")
_OBJECT_SPAN = re.compile(r"\{.*\}", re.S)


# ────────── normalizer ──────────
def normalize_response(raw: str) -> dict:
    """
    Pull the JSON object out of whatever the model said:
    1. trim, drop a ```json … ``` fence
    2. greedy first "{" … last "}" span, so prose around it is ignored
    3. fall back to the whole cleaned text
    """
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned))

    candidates = []
    m = _OBJECT_SPAN.search(cleaned)
    if m:
        candidates.append(m.group())
    candidates.append(cleaned)

    last_err: Optional[Exception] = None
    for text in candidates:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            last_err = exc
            continue
        if isinstance(parsed, dict):
            return parsed
    raise MalformedOutput(f"Failed to parse JSON response: {last_err or 'no JSON object found'}")


# ────────── validator ──────────
def validate_beat_response(obj: Any) -> StoryResponse:
    # model output must use the wire names; snake_case keys count as missing
    try:
        return StoryResponse.model_validate(obj, by_alias=True, by_name=False)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "<root>"
        raise SchemaViolation(f"{where}: {first['msg']}", location=where) from exc


# ────────── orchestrator ──────────
class TurnState(enum.Enum):
    IDLE = "idle"
    RATE_CHECKED = "rate_checked"
    COMPOSING = "composing"
    GENERATING = "generating"
    NORMALIZING = "normalizing"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


class StoryOrchestrator:
    def __init__(
        self,
        governor: RateGovernor,
        driver: ModelFallbackDriver,
        max_repairs: int = 1,
        history_window: int = HISTORY_WINDOW,
    ):
        self.governor = governor
        self.driver = driver
        self.max_repairs = max_repairs
        self.history_window = history_window

    def _enter(self, state: TurnState, attempt: int) -> None:
        logger.debug("turn state → %s (attempt %d)", state.value, attempt)

    def run(self, request: StoryRequest) -> StoryResponse:
        self._enter(TurnState.IDLE, 0)
        admission = self.governor.check_and_record()
        if not admission.allowed:
            self._enter(TurnState.FAILED, 0)
            raise RateLimited(admission.reason, scope=admission.scope)
        self._enter(TurnState.RATE_CHECKED, 0)

        repair: Optional[str] = None
        for attempt in range(self.max_repairs + 1):
            self._enter(TurnState.COMPOSING, attempt)
            prompt = compose(request, repair, window=self.history_window)
            try:
                self._enter(TurnState.GENERATING, attempt)
                raw = self.driver.generate(prompt)
                self._enter(TurnState.NORMALIZING, attempt)
                parsed = normalize_response(raw)
                self._enter(TurnState.VALIDATING, attempt)
                result = validate_beat_response(parsed)
            except (MalformedOutput, SchemaViolation) as exc:
                if attempt >= self.max_repairs:
                    self._enter(TurnState.FAILED, attempt)
                    raise
                logger.warning("unusable model output, re-prompting once: %s", exc)
                repair = repair_instruction(str(exc))
                continue
            except Exception:
                self._enter(TurnState.FAILED, attempt)
                raise
            self._enter(TurnState.DONE, attempt)
            return result
