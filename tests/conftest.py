from __future__ import annotations

import copy
import json

import pytest


def make_beat(title: str = "The Gate of Ash", ids: tuple[str, ...] = ("A", "B", "C")) -> dict:
    return {
        "title": title,
        "text": "*Not yet.* Ren clenches his fist. SHADOW STEP!",
        "mood": "tense",
        "location": "Ashen Gate",
        "hook": "A gate that only opens for the desperate.",
        "turn": "The guardian notices Ren.",
        "cliffhanger": "The gate begins to close.",
        "choices": [{"id": i, "text": f"Option {i}", "tone": "bold"} for i in ids],
    }


def make_panel() -> dict:
    return {
        "keyItems": [{"name": "Cracked Tsuba", "note": "hums near spirits"}],
        "currentThread": {"focus": "Reach the gate", "leads": ["old map", "the guardian"]},
        "people": [{"name": "Mika", "status": "ally", "note": "owes Ren a favor"}],
        "abilities": [{"name": "SHADOW STEP", "cost": "stamina", "drawback": "leaves a trace"}],
        "continuityFlags": ["ren_left_village"],
    }


def make_response(title: str = "The Gate of Ash") -> dict:
    return {
        "beat": make_beat(title),
        "storyPanel": make_panel(),
        "imagePrompt": "a boy facing a burning gate at dusk",
        "recapLine": "Ren reaches the gate.",
        "nextSignal": "The guardian stirs.",
    }


def make_request(**overrides) -> dict:
    body = {
        "dream": "I want to break the curse tied to my name.",
        "choiceId": None,
        "history": [],
        "storyPanel": {
            "keyItems": [],
            "currentThread": {"focus": "", "leads": []},
            "people": [],
            "abilities": [],
            "continuityFlags": [],
        },
    }
    body.update(overrides)
    return body


class ScriptedInvoke:
    """invoke(model_id, prompt) that replays a script of texts/exceptions."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls: list[tuple[str, str]] = []

    def __call__(self, model_id: str, prompt: str) -> str:
        self.calls.append((model_id, prompt))
        step = self.steps.pop(0)
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, dict):
            return json.dumps(step)
        return step

    @property
    def models(self) -> list[str]:
        return [m for m, _ in self.calls]


class ProviderError(Exception):
    """Shaped like the SDK's status errors: status_code / code / body."""

    def __init__(self, message: str = "", status_code=None, code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.body = body


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def response_dict() -> dict:
    return copy.deepcopy(make_response())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
