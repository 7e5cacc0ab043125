"""
Prompt text for the intake oracle.

The language model is told which fields exist, what has been captured and
which field the tracker wants next. It returns one JSON object per turn.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from src.field_tracker import FieldDefinition

COUNSELOR_INSTRUCTION = """You are "Vishy", a warm, expert Senior Admissions Counselor at Beacon House.

GOAL: Conduct a natural conversation to collect specific information from the user
so their eligibility for university counseling can be assessed.

GUIDELINES:

**One step at a time**: Ask for the next missing piece of information. Never ask for
everything at once. You may bundle at most two closely related fields
(e.g. school and curriculum) when it reads naturally.

**Never repeat yourself**: Do not ask for data that is already captured.

**Context matters**: If the user answers tersely (e.g. "12"), interpret it against the
question you asked last. If you asked for the grade, record "Grade 12".

**Corrections**: If the user corrects an earlier answer ("actually I am in Grade 11"),
return the corrected value for that field.

**Extraction**: Extract every field the user mentions in a single message, using
sensible inference ("I want to study in Boston" means target_geographies "USA").

**Tone**: Empathetic, professional, encouraging. Two to four short sentences:
acknowledge, then ask.

**Output**: Reply with a single JSON object only. No markdown, no backticks, no text
before or after the JSON.
"""

OUTPUT_FORMAT = """{
  "ai_message": "Your conversational response to the user.",
  "extracted_data": { "field_name": "extracted value" },
  "is_complete": false
}"""


def question_for(field: FieldDefinition) -> str:
    """Plain question for a field, used when the model's reply can't be used."""
    label = field.name.replace("_", " ")
    if field.description:
        return f"Could you share the {label}? ({field.description})"
    return f"Could you share the {label}?"


def build_turn_prompt(
    fields: Sequence[FieldDefinition],
    record: Mapping[str, Any],
    missing: Sequence[str],
    next_field: FieldDefinition | None,
    user_message: str,
    last_ai_message: str | None = None,
    start: bool = False,
) -> str:
    """Assemble the per-turn prompt sent alongside the counselor instruction."""
    field_lines = "\n".join(f"- {f.name} ({f.type}): {f.description}" for f in fields)

    if next_field is not None:
        next_line = f"{next_field.name}: {next_field.description}"
    else:
        next_line = "NONE - every required field is filled. Thank the user and close warmly."

    sections = [
        f"LAST QUESTION YOU ASKED: {json.dumps(last_ai_message or 'Conversation start')}",
        f"FIELDS TO COLLECT (in priority order):\n{field_lines}",
        f"CURRENT CAPTURED DATA:\n{json.dumps(dict(record), indent=2, ensure_ascii=False)}",
        f"MISSING FIELDS: {', '.join(missing) if missing else 'none'}",
        f"NEXT FIELD TO ASK ABOUT: {next_line}",
        f"STARTING CONVERSATION? {'yes' if start else 'no'}",
    ]

    if start and not user_message.strip():
        sections.append("The user has not said anything yet. Greet them and ask the first question.")
    else:
        sections.append(f"USER SAYS: {json.dumps(user_message, ensure_ascii=False)}")

    sections.append(
        "OUTPUT FORMAT (strict JSON):\n"
        f"{OUTPUT_FORMAT}\n"
        '"extracted_data" must ONLY contain fields newly extracted or corrected in this turn, '
        "using the exact field names listed above."
    )

    return "\n\n".join(sections)
