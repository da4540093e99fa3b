"""
beatsmith/prompts.py  ·  narrative contract + continuity digest → one prompt

Everything here is pure: the same request always renders the same text.
"""
from __future__ import annotations

from typing import Optional

from jinja2 import Template

from .models import StoryPanel, StoryRequest

HISTORY_WINDOW = 12

# ────────── narrative contract ──────────
SYSTEM_PROMPT = """
You are a masterful shōnen anime storyteller creating an original, branching narrative. This is NOT a game—it's an interactive story with continuity.

CRITICAL RULES:
1. Original universe only—NO copying existing anime IP (no One Piece, Dragon Ball, Naruto, etc. names, attacks, factions, or iconic lines).
2. Teen-level shōnen tone: danger, rivalry, sacrifice, humor—NO explicit gore.
3. Anime pacing: Hook → Choice → Turn (change caused by choice) → Cliffhanger every beat.
4. Formatting:
   - Inner thoughts in *italics*
   - Technique names in ALL CAPS (e.g., "SHADOW STEP", "FLAME BREATH")
5. Choices must cause REAL divergence—not cosmetic changes.
6. Maintain continuity across beats using the storyPanel data.

OUTPUT FORMAT:
You MUST output STRICT JSON ONLY matching this exact schema:
{
  "beat": {
    "title": "string (brief, dramatic)",
    "text": "string (cinematic anime prose with inner thoughts in *italics* and techniques in ALL CAPS)",
    "mood": "string (e.g., 'tense', 'hopeful', 'mysterious')",
    "location": "string (where this beat takes place)",
    "hook": "string (what draws the reader in)",
    "turn": "string (how the choice changed things)",
    "cliffhanger": "string (what makes them want to continue)",
    "choices": [
      { "id": "A", "text": "string", "tone": "string" },
      { "id": "B", "text": "string", "tone": "string" },
      { "id": "C", "text": "string", "tone": "string" }
    ]
  },
  "storyPanel": {
    "keyItems": [{ "name": "string", "note": "string" }],
    "currentThread": { "focus": "string", "leads": ["string"] },
    "people": [{ "name": "string", "status": "string", "note": "string" }],
    "abilities": [{ "name": "string", "cost": "string", "drawback": "string" }],
    "continuityFlags": ["string"]
  },
  "imagePrompt": "string (detailed visual description for anime image generation, no style tags)",
  "recapLine": "string (one-line summary of this beat)",
  "nextSignal": "string (hint about what's coming)"
}

Respond with ONLY the JSON object, no markdown, no code blocks, no explanation.
""".strip()

OPENING_INSTRUCTION = (
    "This is the opening beat. Create an exciting hook that introduces "
    "the world and the dream."
)

REPAIR_INSTRUCTION = (
    "IMPORTANT: The previous response was invalid JSON. Fix it and output ONLY "
    "valid JSON matching the schema, no markdown, no code blocks, no explanation."
)

USER_PROMPT = Template("""
Dream: "{{ dream }}"

{% if history %}
Story so far:
{% for h in history %}
{% if not loop.first %}

---

{% endif %}
Beat {{ loop.index }}: {{ h.beat.title }}
{{ h.beat.text }}
{% if h.choice_id %}
[Chose {{ h.choice_id }}: {{ h.beat.choice_text(h.choice_id) }}]
{% endif %}
{% endfor %}

{% endif %}
Current Story Panel:
- Key Items: {{ ledger.key_items }}
- Current Thread: {{ ledger.focus }} (Leads: {{ ledger.leads }})
- People: {{ ledger.people }}
- Abilities: {{ ledger.abilities }}
- Continuity Flags: {{ ledger.flags }}

{{ turn_instruction }}
{% if repair_instruction %}

{{ repair_instruction }}
{% endif %}

Generate the next story beat following all rules. Output STRICT JSON ONLY.
""".strip(), trim_blocks=True, lstrip_blocks=True)


def _joined(parts: list[str]) -> str:
    return ", ".join(parts) or "None"


def ledger_digest(panel: StoryPanel) -> dict[str, str]:
    """One compact line per ledger section; empty sections read "None"."""
    thread = panel.current_thread
    return {
        "key_items": _joined([f"{i.name} ({i.note})" for i in panel.key_items]),
        "focus": thread.focus or "None",
        "leads": _joined(list(thread.leads)),
        "people": _joined([f"{p.name} ({p.status}: {p.note})" for p in panel.people]),
        "abilities": _joined(
            [f"{a.name} [Cost: {a.cost}, Drawback: {a.drawback}]" for a in panel.abilities]
        ),
        "flags": _joined(list(panel.continuity_flags)),
    }


def repair_instruction(problem: Optional[str] = None) -> str:
    if not problem:
        return REPAIR_INSTRUCTION
    return f"{REPAIR_INSTRUCTION}\nProblem with the previous response: {problem}"


def compose(
    request: StoryRequest,
    repair: Optional[str] = None,
    window: int = HISTORY_WINDOW,
) -> str:
    if request.choice_id:
        turn_instruction = f"The user chose: {request.choice_id}"
    else:
        turn_instruction = OPENING_INSTRUCTION

    user_prompt = USER_PROMPT.render(
        dream              = request.dream,
        history            = request.history[-window:] if window > 0 else [],
        ledger             = ledger_digest(request.story_panel),
        turn_instruction   = turn_instruction,
        repair_instruction = repair or "",
    )
    return f"{SYSTEM_PROMPT}\n\n{user_prompt}"
