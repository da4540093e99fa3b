"""
beatsmith/sessions.py  ·  story state per browser session

The state store is a plain in-process dict: lost on restart, not shared
between workers. Every update builds a new StoryState and swaps it in, so a
failed turn leaves the saved one as it was.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .errors import InvalidInput
from .models import HistoryEntry, StoryPanel, StoryRequest, StoryResponse, StoryState
from .prompts import HISTORY_WINDOW

logger = logging.getLogger(__name__)

DREAMS = [
    "I want to become strong enough to protect the people I love.",
    "I want to uncover the truth behind my missing past.",
    "I want to master the power inside me without losing myself.",
    "I want to defeat my rival and prove what I'm worth.",
    "I want to break the curse tied to my name.",
    "I want to reach a forbidden place no one returns from.",
]


class StateStore:
    def __init__(self):
        self._states: dict[str, StoryState] = {}
        self._lock = threading.Lock()

    def save(self, sid: str, state: StoryState) -> None:
        with self._lock:
            self._states[sid] = state.model_copy(deep=True)
        logger.debug("saved story state for %s… (%d beats behind)", sid[:8], len(state.history))

    def load(self, sid: Optional[str]) -> Optional[StoryState]:
        if not sid:
            return None
        with self._lock:
            state = self._states.get(sid)
            return state.model_copy(deep=True) if state else None

    def clear(self, sid: Optional[str]) -> None:
        with self._lock:
            self._states.pop(sid, None)


def new_state(dream: str) -> StoryState:
    return StoryState(dream=dream, story_panel=StoryPanel.empty())


def build_request(
    state: StoryState,
    choice_id: Optional[str] = None,
    window: int = HISTORY_WINDOW,
) -> StoryRequest:
    if choice_id is not None:
        beat = state.current_beat
        if beat is None or choice_id not in {c.id for c in beat.choices}:
            raise InvalidInput(details=f"choice {choice_id!r} is not on the current beat")
    return StoryRequest(
        dream       = state.dream,
        choice_id   = choice_id,
        history     = state.history[-window:] if window > 0 else [],
        story_panel = state.story_panel,
    )


def apply_response(
    state: StoryState,
    response: StoryResponse,
    choice_id: Optional[str] = None,
) -> StoryState:
    """Next state after a successful turn; `state` itself is not touched."""
    history = list(state.history)
    if state.current_beat is not None:
        history.append(HistoryEntry(beat=state.current_beat, choice_id=choice_id))
    return StoryState(
        dream        = state.dream,
        history      = history,
        current_beat = response.beat,
        story_panel  = response.story_panel.model_copy(deep=True),
        image_prompt = response.image_prompt,
    )


def step_back(state: StoryState) -> Optional[StoryState]:
    """Reopen the previous beat, or None when there is nothing to go back to.

    The ledger and image prompt stay as they are now; the ledger is not
    snapshotted per beat.
    """
    if not state.history:
        return None
    previous = state.history[-1]
    return StoryState(
        dream        = state.dream,
        history      = state.history[:-1],
        current_beat = previous.beat,
        story_panel  = state.story_panel,
        image_prompt = state.image_prompt,
    )
