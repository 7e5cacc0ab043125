"""
Deterministic field-completion tracker.

Why:
The language model extracts values and phrases questions. It does not get to
decide what is still missing or whether the form is done. This module owns
that verdict: an ordered, immutable list of field definitions plus per-field
requirement rules, evaluated against a plain ``dict[str, str]`` record.

Every function here is pure. The tracker keeps no per-conversation state, so
a single instance can serve any number of concurrent requests.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

DataRecord = dict[str, str]
RequirementRule = Callable[[Mapping[str, Any]], bool]

FIELD_TYPES = ("string", "number", "boolean", "date", "email", "url", "text")


def always_required(record: Mapping[str, Any]) -> bool:
    return True


def _matches(record: Mapping[str, Any], field_name: str, values: tuple[str, ...]) -> bool:
    current = record.get(field_name)
    if not isinstance(current, str):
        return False
    wanted = {v.strip().lower() for v in values}
    return current.strip().lower() in wanted


def required_unless(field_name: str, *values: str) -> RequirementRule:
    """Field is required unless ``field_name`` holds one of ``values`` (case-insensitive)."""

    def rule(record: Mapping[str, Any]) -> bool:
        return not _matches(record, field_name, values)

    rule.__name__ = f"required_unless_{field_name}"
    return rule


def required_when(field_name: str, *values: str) -> RequirementRule:
    """Field is required only while ``field_name`` holds one of ``values``."""

    def rule(record: Mapping[str, Any]) -> bool:
        return _matches(record, field_name, values)

    rule.__name__ = f"required_when_{field_name}"
    return rule


def is_filled(value: Any) -> bool:
    """A value counts as answered when it is a non-blank string."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


@dataclass(frozen=True)
class FieldDefinition:
    """
    One field the conversation has to collect.

    ``type`` and ``description`` are hints for display and for the language
    model only; the tracker never validates values against them.
    ``skip_value`` is written into the record when the field is not required
    under the current answers (e.g. "N/A").
    """

    name: str
    type: str = "string"
    description: str = ""
    required_when: RequirementRule = field(default=always_required, compare=False)
    skip_value: str | None = None

    def is_required(self, record: Mapping[str, Any]) -> bool:
        return bool(self.required_when(record))

    def as_prompt_dict(self) -> dict[str, str]:
        return {"name": self.name, "type": self.type, "description": self.description}


@dataclass(frozen=True)
class TrackerResult:
    record: DataRecord
    next_field: str | None
    complete: bool
    missing: list[str]


class FieldTracker:
    """
    Canonical source of "what is missing" for one form.

    The field order given at construction is the order questions are asked in.
    """

    def __init__(self, fields: Iterable[FieldDefinition]):
        self.fields: tuple[FieldDefinition, ...] = tuple(fields)

        seen: set[str] = set()
        for f in self.fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field name: {f.name}")
            seen.add(f.name)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def normalize(self, record: Mapping[str, Any] | None) -> DataRecord:
        """
        Return a new record holding exactly the defined field names.

        Missing keys become ``""``. Present values are passed through as-is,
        so normalizing twice changes nothing.
        """
        if not isinstance(record, Mapping):
            record = {}

        normalized: DataRecord = {}
        for f in self.fields:
            value = record.get(f.name)
            normalized[f.name] = "" if value is None else value
        return normalized

    def merge(
        self, old: Mapping[str, Any] | None, extracted: Mapping[str, Any] | None
    ) -> DataRecord:
        """Overlay newly extracted values on the old record. New values always win."""
        merged = dict(old) if isinstance(old, Mapping) else {}
        if isinstance(extracted, Mapping):
            merged.update(extracted)
        return self.normalize(merged)

    def fill_skipped(self, record: Mapping[str, Any]) -> DataRecord:
        """
        Write sentinel values into empty fields that are currently not required.

        A sentinel left over from an earlier answer is cleared again once the
        field becomes required, so it is asked for instead of counting as filled.
        """
        filled = self.normalize(record)
        for f in self.fields:
            if f.skip_value is None:
                continue
            required = f.is_required(filled)
            if required and filled[f.name] == f.skip_value:
                filled[f.name] = ""
            elif not required and not is_filled(filled[f.name]):
                filled[f.name] = f.skip_value
        return filled

    def missing_fields(self, record: Mapping[str, Any] | None) -> list[str]:
        if not isinstance(record, Mapping):
            record = {}
        return [
            f.name
            for f in self.fields
            if f.is_required(record) and not is_filled(record.get(f.name))
        ]

    def next_missing_field(self, record: Mapping[str, Any] | None) -> FieldDefinition | None:
        """First field, in declared order, that is required and still empty."""
        if not isinstance(record, Mapping):
            record = {}
        for f in self.fields:
            if not f.is_required(record):
                continue
            if not is_filled(record.get(f.name)):
                return f
        return None

    def is_complete(self, record: Mapping[str, Any] | None) -> bool:
        return self.next_missing_field(record) is None

    def apply_turn(
        self, record: Mapping[str, Any] | None, extracted: Mapping[str, Any] | None
    ) -> TrackerResult:
        """Merge one turn's extraction and recompute the completion verdict."""
        merged = self.fill_skipped(self.merge(self.normalize(record), extracted))
        next_field = self.next_missing_field(merged)
        return TrackerResult(
            record=merged,
            next_field=next_field.name if next_field else None,
            complete=next_field is None,
            missing=self.missing_fields(merged),
        )
