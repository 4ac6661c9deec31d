"""Tests for the grading result contract."""

import json

import pytest

from smartgrade.tools.exam_grading.errors import MalformedResult
from smartgrade.tools.exam_grading.models import GradingResult, QuestionResult
from smartgrade.tools.exam_grading.result_schema import (
    check_consistency,
    grading_result_json_schema,
    parse_grading_result,
)


@pytest.fixture
def wire_result():
    """A schema-conforming model response using camelCase field names."""
    return {
        "studentName": "Li Wei",
        "totalScore": 8,
        "maxScore": 10,
        "letterGrade": "B",
        "summary": "Good work",
        "constructiveFeedback": "Review part 2",
        "questions": [
            {
                "questionId": "1",
                "score": 5,
                "maxScore": 5,
                "isCorrect": True,
                "studentAnswer": "x = 4",
                "correction": "Correct.",
                "rubricReference": "Q1: x = 4 (5 pts)",
                "comments": "Well done",
            },
            {
                "questionId": "2a",
                "score": 3,
                "maxScore": 5,
                "isCorrect": False,
                "studentAnswer": "Photosynthesis makes sugar",
                "correction": "Also mention oxygen release.",
                "comments": "Partial credit",
            },
        ],
    }


class TestSchema:
    """Test the JSON schema handed to the model."""

    def test_required_fields(self):
        schema = grading_result_json_schema()

        assert set(schema["required"]) == {
            "totalScore", "maxScore", "letterGrade", "summary", "constructiveFeedback", "questions"
        }
        question = schema["$defs"]["QuestionResult"]
        assert set(question["required"]) == {
            "questionId", "score", "maxScore", "isCorrect", "studentAnswer", "correction", "comments"
        }
        assert "rubricReference" in question["properties"]


class TestParseGradingResult:
    """Test parsing model responses."""

    def test_round_trip_keeps_values(self, wire_result):
        result = parse_grading_result(json.dumps(wire_result))

        assert result.student_name == "Li Wei"
        assert result.total_score == 8
        assert result.letter_grade == "B"
        assert [q.question_id for q in result.questions] == ["1", "2a"]
        assert result.questions[0].rubric_reference == "Q1: x = 4 (5 pts)"
        assert result.questions[1].rubric_reference is None
        assert result.questions[1].is_correct is False
        assert result.model_dump(by_alias=True, exclude_none=True) == wire_result

    def test_student_name_optional(self, wire_result):
        del wire_result["studentName"]
        result = parse_grading_result(json.dumps(wire_result))
        assert result.student_name is None

    @pytest.mark.parametrize("field", ["totalScore", "maxScore", "letterGrade", "summary",
                                       "constructiveFeedback", "questions"])
    def test_missing_required_field(self, wire_result, field):
        del wire_result[field]
        with pytest.raises(MalformedResult):
            parse_grading_result(json.dumps(wire_result))

    def test_missing_question_field(self, wire_result):
        del wire_result["questions"][1]["correction"]
        with pytest.raises(MalformedResult):
            parse_grading_result(json.dumps(wire_result))

    def test_wrong_types_not_coerced(self, wire_result):
        wire_result["questions"][0]["score"] = "5"
        with pytest.raises(MalformedResult):
            parse_grading_result(json.dumps(wire_result))

    def test_negative_score_rejected(self, wire_result):
        wire_result["questions"][0]["score"] = -1
        with pytest.raises(MalformedResult):
            parse_grading_result(json.dumps(wire_result))

    def test_unknown_field_rejected(self, wire_result):
        wire_result["confidence"] = 0.9
        with pytest.raises(MalformedResult):
            parse_grading_result(json.dumps(wire_result))

    @pytest.mark.parametrize("body", ["", "   ", "not json", "{\"totalScore\": 8", "[]"])
    def test_unparsable_body(self, body):
        with pytest.raises(MalformedResult):
            parse_grading_result(body)


class TestConsistency:
    """Test advisory arithmetic checks."""

    def test_consistent_result(self, wire_result):
        result = parse_grading_result(json.dumps(wire_result))
        assert check_consistency(result) == []

    def test_float_sums_tolerated(self):
        questions = [
            QuestionResult(question_id=str(i), score=0.1, max_score=1, is_correct=False,
                           student_answer="", correction="", comments="")
            for i in range(3)
        ]
        result = GradingResult(total_score=0.3, max_score=3, letter_grade="F", summary="",
                               constructive_feedback="", questions=questions)
        assert check_consistency(result) == []

    def test_inconsistent_result(self, wire_result):
        wire_result["totalScore"] = 11
        wire_result["questions"][1]["score"] = 6
        result = parse_grading_result(json.dumps(wire_result))

        warnings = check_consistency(result)

        assert any("Question 2a" in w for w in warnings)
        assert any("exceeds max score 10" in w for w in warnings)
        assert len(warnings) == 2  # 11 == 5 + 6 so the sum check passes

    def test_empty_questions_checked_against_zero_sums(self, wire_result):
        wire_result["questions"] = []
        result = parse_grading_result(json.dumps(wire_result))

        warnings = check_consistency(result)

        assert len(warnings) == 2
        assert warnings[0].endswith("does not equal the sum of question scores 0")
        assert warnings[1].endswith("does not equal the sum of question max scores 0")

    def test_empty_questions_with_zero_totals(self, wire_result):
        wire_result.update(totalScore=0, maxScore=0, questions=[])
        result = parse_grading_result(json.dumps(wire_result))
        assert check_consistency(result) == []
