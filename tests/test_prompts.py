from __future__ import annotations

from conftest import make_beat, make_panel, make_request

from beatsmith.models import Choice, HistoryEntry, StoryBeat, StoryRequest
from beatsmith.prompts import (
    OPENING_INSTRUCTION,
    REPAIR_INSTRUCTION,
    SYSTEM_PROMPT,
    compose,
    repair_instruction,
)


def _request(**overrides) -> StoryRequest:
    return StoryRequest.model_validate(make_request(**overrides))


def test_opening_prompt_shape() -> None:
    prompt = compose(_request())
    assert prompt.startswith(SYSTEM_PROMPT + "\n\n")
    assert 'Dream: "I want to break the curse tied to my name."' in prompt
    assert OPENING_INSTRUCTION in prompt
    assert "Story so far" not in prompt
    assert prompt.endswith("Output STRICT JSON ONLY.")


def test_empty_ledger_renders_none_placeholders() -> None:
    prompt = compose(_request())
    assert "- Key Items: None" in prompt
    assert "- Current Thread: None (Leads: None)" in prompt
    assert "- People: None" in prompt
    assert "- Abilities: None" in prompt
    assert "- Continuity Flags: None" in prompt


def test_ledger_digest_flattens_sections() -> None:
    prompt = compose(_request(storyPanel=make_panel(), choiceId="B"))
    assert "- Key Items: Cracked Tsuba (hums near spirits)" in prompt
    assert "- Current Thread: Reach the gate (Leads: old map, the guardian)" in prompt
    assert "- People: Mika (ally: owes Ren a favor)" in prompt
    assert "- Abilities: SHADOW STEP [Cost: stamina, Drawback: leaves a trace]" in prompt
    assert "- Continuity Flags: ren_left_village" in prompt
    assert "The user chose: B" in prompt
    assert OPENING_INSTRUCTION not in prompt


def test_history_digest_uses_each_beats_own_choices() -> None:
    history = [
        {"beat": make_beat("One"), "choiceId": "A"},
        {"beat": make_beat("Two"), "choiceId": None},
    ]
    prompt = compose(_request(history=history, choiceId="C"))
    assert "Story so far:\nBeat 1: One\n" in prompt
    assert "[Chose A: Option A]\n\n---\n\nBeat 2: Two\n" in prompt
    assert prompt.count("[Chose") == 1


def test_history_is_cut_to_last_twelve() -> None:
    history = [{"beat": make_beat(f"Beat-{n}"), "choiceId": "A"} for n in range(15)]
    prompt = compose(_request(history=history, choiceId="A"))
    assert "Beat-2\n" not in prompt
    assert "Beat 1: Beat-3\n" in prompt
    assert "Beat 12: Beat-14\n" in prompt


def test_repair_instruction_is_appended_verbatim() -> None:
    repair = repair_instruction("beat.choices: List should have at least 3 items")
    prompt = compose(_request(), repair)
    assert repair in prompt
    assert prompt.index(OPENING_INSTRUCTION) < prompt.index(REPAIR_INSTRUCTION)
    assert repair_instruction() == REPAIR_INSTRUCTION


def test_compose_is_deterministic() -> None:
    history = [{"beat": make_beat("One"), "choiceId": "B"}]
    a = compose(_request(history=history, storyPanel=make_panel(), choiceId="A"))
    b = compose(_request(history=history, storyPanel=make_panel(), choiceId="A"))
    assert a == b


def test_choice_missing_from_its_beat_renders_empty_text() -> None:
    # a stored beat that only kept two options; validation would reject it
    beat = StoryBeat.model_construct(
        **{k: v for k, v in make_beat("Two-way").items() if k != "choices"},
        choices=[Choice(id="A", text="Run", tone="scared"), Choice(id="B", text="Hide", tone="calm")],
    )
    request = _request(choiceId="A")
    request.history.append(HistoryEntry.model_construct(beat=beat, choice_id="C"))

    prompt = compose(request)
    assert "Beat 1: Two-way\n" in prompt
    assert "[Chose C: ]" in prompt
