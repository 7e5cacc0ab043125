"""
Pytest configuration and fixtures.
Shared form definitions, records and a mocked oracle.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from data.admissions_form import build_admissions_fields
from src.field_tracker import FieldDefinition, FieldTracker, required_when


@pytest.fixture
def admissions_tracker():
    """Admissions form with the default conditional parent-name rule."""
    return FieldTracker(build_admissions_fields("conditional"))


@pytest.fixture
def small_tracker():
    """[type, a, b] where b is only required when type == X."""
    return FieldTracker(
        [
            FieldDefinition(name="type"),
            FieldDefinition(name="a"),
            FieldDefinition(name="b", required_when=required_when("type", "X")),
        ]
    )


@pytest.fixture
def student_record():
    """Fully filled admissions record for a student filling the form themself."""
    return {
        "form_filler_type": "Student",
        "student_name": "Meera Iyer",
        "parent_name": "",
        "current_grade": "Grade 11",
        "phone_number": "9876543210",
        "parent_email": "meera@example.com",
        "location": "Bengaluru",
        "curriculum_type": "CBSE",
        "school_name": "Delhi Public School",
        "target_geographies": "USA, UK",
        "scholarship_requirement": "Partial",
    }


def oracle_reply(ai_message="Thanks! Which grade are you in?", extracted=None, complete=False):
    """Build a raw JSON oracle reply."""
    return json.dumps(
        {"ai_message": ai_message, "extracted_data": extracted or {}, "is_complete": complete}
    )


@pytest.fixture
def make_reply():
    """Factory for raw JSON oracle replies."""
    return oracle_reply


@pytest.fixture
def mock_client():
    """LLM client whose generate() returns a canned JSON reply."""
    client = Mock()
    client.generate = AsyncMock(return_value=oracle_reply())
    client.get_circuit_breaker_state.return_value = {"state": "closed"}
    return client

