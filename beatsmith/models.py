from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

ChoiceId = Literal["A", "B", "C"]


class CamelModel(BaseModel):
    # camelCase on the wire, snake_case in Python; unknown keys are dropped
    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
        extra="ignore",
    )


class Choice(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: ChoiceId
    text: StrictStr
    tone: StrictStr


class StoryBeat(CamelModel):
    model_config = ConfigDict(frozen=True)

    title: StrictStr
    text: StrictStr
    mood: StrictStr
    location: StrictStr
    hook: StrictStr
    turn: StrictStr
    cliffhanger: StrictStr
    choices: Annotated[list[Choice], Field(min_length=3, max_length=3)]

    @field_validator("choices")
    @classmethod
    def _unique_ids(cls, choices: list[Choice]) -> list[Choice]:
        ids = [c.id for c in choices]
        if len(set(ids)) != len(ids):
            raise ValueError(f"choice ids must be unique, got {ids}")
        return choices

    def choice_text(self, choice_id: Optional[str]) -> str:
        return next((c.text for c in self.choices if c.id == choice_id), "")


# ────────── continuity ledger ──────────
class KeyItem(CamelModel):
    name: StrictStr
    note: StrictStr


class CurrentThread(CamelModel):
    focus: StrictStr
    leads: list[StrictStr]


class Person(CamelModel):
    name: StrictStr
    status: StrictStr
    note: StrictStr


class Ability(CamelModel):
    name: StrictStr
    cost: StrictStr
    drawback: StrictStr


class StoryPanel(CamelModel):
    key_items: list[KeyItem]
    current_thread: CurrentThread
    people: list[Person]
    abilities: list[Ability]
    continuity_flags: list[StrictStr]

    @classmethod
    def empty(cls) -> "StoryPanel":
        return cls(
            key_items=[],
            current_thread=CurrentThread(focus="", leads=[]),
            people=[],
            abilities=[],
            continuity_flags=[],
        )


# ────────── request / response ──────────
class HistoryEntry(CamelModel):
    beat: StoryBeat
    choice_id: Optional[ChoiceId] = None


class StoryRequest(CamelModel):
    dream: StrictStr = Field(min_length=1)
    choice_id: Optional[ChoiceId] = None
    history: list[HistoryEntry] = []
    story_panel: StoryPanel = Field(default_factory=StoryPanel.empty)

    @field_validator("dream")
    @classmethod
    def _dream_not_blank(cls, dream: str) -> str:
        if not dream.strip():
            raise ValueError("dream is required")
        return dream


class StoryResponse(CamelModel):
    beat: StoryBeat
    story_panel: StoryPanel
    image_prompt: StrictStr
    recap_line: StrictStr
    next_signal: StrictStr


class StoryState(CamelModel):
    dream: StrictStr
    history: list[HistoryEntry] = []
    current_beat: Optional[StoryBeat] = None
    story_panel: StoryPanel = Field(default_factory=StoryPanel.empty)
    image_prompt: Optional[StrictStr] = None
