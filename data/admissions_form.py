"""
Form definitions served by the intake API.
The admissions list is the fixed university-counselling intake form; custom
forms are built from definitions supplied by the caller.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from src.field_tracker import FIELD_TYPES, FieldDefinition, required_unless

PARENT_NAME_POLICIES = ("conditional", "always", "sentinel")
NOT_APPLICABLE = "N/A"

ADMISSIONS_FIELDS = [
    {
        "name": "form_filler_type",
        "type": "string",
        "description": "Who is filling the form? Options: 'Parent', 'Student'",
    },
    {"name": "student_name", "type": "string", "description": "Full name of the student."},
    {
        "name": "parent_name",
        "type": "string",
        "description": "Full name of the parent (Only if form_filler_type is Parent).",
    },
    {
        "name": "current_grade",
        "type": "string",
        "description": "Current academic grade (e.g., Grade 9, Grade 12, Gap Year).",
    },
    {"name": "phone_number", "type": "string", "description": "Contact number."},
    {"name": "parent_email", "type": "email", "description": "Email address."},
    {"name": "location", "type": "string", "description": "City or place of residence."},
    {
        "name": "curriculum_type",
        "type": "string",
        "description": "Current curriculum (e.g., CBSE, ICSE, IB, State Board).",
    },
    {"name": "school_name", "type": "string", "description": "Name of the current school."},
    {
        "name": "target_geographies",
        "type": "string",
        "description": "Preferred countries for study (e.g., USA, UK, Canada).",
    },
    {
        "name": "scholarship_requirement",
        "type": "string",
        "description": "Scholarship needs. Options: 'Full', 'Partial', 'None'.",
    },
]


def build_admissions_fields(policy: str = "conditional") -> tuple[FieldDefinition, ...]:
    """
    Build the admissions form for a parent-name policy.

    conditional: parent_name is skipped when a student fills the form.
    always: parent_name is asked regardless of who fills the form.
    sentinel: like conditional, but the skipped field is recorded as "N/A".
    """
    policy = (policy or "").strip().lower()
    if policy not in PARENT_NAME_POLICIES:
        raise ValueError(
            f"Unknown parent name policy: {policy!r}. "
            f"Expected one of {', '.join(PARENT_NAME_POLICIES)}."
        )

    fields = []
    for spec in ADMISSIONS_FIELDS:
        if spec["name"] == "parent_name" and policy != "always":
            fields.append(
                FieldDefinition(
                    **spec,
                    required_when=required_unless("form_filler_type", "Student"),
                    skip_value=NOT_APPLICABLE if policy == "sentinel" else None,
                )
            )
        else:
            fields.append(FieldDefinition(**spec))
    return tuple(fields)


def build_custom_fields(specs: Iterable[Mapping[str, Any]]) -> tuple[FieldDefinition, ...]:
    """Turn caller-supplied {name, datatype, description} dicts into always-required fields."""
    fields = []
    for spec in specs:
        name = str(spec.get("name") or "").strip()
        if not name:
            continue
        datatype = str(spec.get("datatype") or spec.get("type") or "string").strip().lower()
        if datatype not in FIELD_TYPES:
            datatype = "string"
        fields.append(
            FieldDefinition(
                name=name,
                type=datatype,
                description=str(spec.get("description") or "").strip(),
            )
        )
    return tuple(fields)
