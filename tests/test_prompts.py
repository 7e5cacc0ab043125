"""
Tests for turn prompt construction.
"""

from src.field_tracker import FieldDefinition
from src.prompts import COUNSELOR_INSTRUCTION, build_turn_prompt, question_for


def _prompt(tracker, record, **kwargs):
    return build_turn_prompt(
        fields=tracker.fields,
        record=record,
        missing=tracker.missing_fields(record),
        next_field=tracker.next_missing_field(record),
        **kwargs,
    )


class TestBuildTurnPrompt:
    def test_includes_fields_data_and_message(self, admissions_tracker):
        record = admissions_tracker.normalize({"student_name": "Meera"})
        prompt = _prompt(admissions_tracker, record, user_message="I'm in 11th")

        assert "- current_grade (string):" in prompt
        assert '"student_name": "Meera"' in prompt
        assert 'USER SAYS: "I\'m in 11th"' in prompt
        assert "extracted_data" in prompt

    def test_next_field_comes_from_tracker(self, admissions_tracker):
        record = admissions_tracker.normalize({"form_filler_type": "Student", "student_name": "M"})
        prompt = _prompt(admissions_tracker, record, user_message="hi")

        assert "NEXT FIELD TO ASK ABOUT: current_grade" in prompt
        assert "parent_name" not in prompt.split("MISSING FIELDS:")[1].split("\n")[0]

    def test_complete_record_says_none(self, admissions_tracker, student_record):
        prompt = _prompt(admissions_tracker, student_record, user_message="thanks")
        assert "NEXT FIELD TO ASK ABOUT: NONE" in prompt
        assert "MISSING FIELDS: none" in prompt

    def test_last_question_included(self, admissions_tracker):
        prompt = _prompt(
            admissions_tracker, {}, user_message="12", last_ai_message="Which grade are you in?"
        )
        assert 'LAST QUESTION YOU ASKED: "Which grade are you in?"' in prompt

    def test_start_without_message_asks_for_greeting(self, admissions_tracker):
        prompt = _prompt(admissions_tracker, {}, user_message="", start=True)

        assert "STARTING CONVERSATION? yes" in prompt
        assert "Greet them" in prompt
        assert "USER SAYS" not in prompt

    def test_instruction_demands_json(self):
        assert "JSON" in COUNSELOR_INSTRUCTION


class TestQuestionFor:
    def test_uses_label_and_description(self):
        field = FieldDefinition(name="current_grade", description="Current academic grade.")
        assert question_for(field) == "Could you share the current grade? (Current academic grade.)"

    def test_without_description(self):
        assert question_for(FieldDefinition(name="city")) == "Could you share the city?"
