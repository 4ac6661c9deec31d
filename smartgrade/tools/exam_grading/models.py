"""Pydantic models for exam grading requests and structured results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from smartgrade.libs.media_encoder import EncodedImage


class Language(str, Enum):
    """Output language for every free-text field of a result."""
    ENGLISH = "en"  # primary
    CHINESE = "zh"  # secondary


@dataclass
class GradingRequest:
    """Everything needed for one grading pass, in upload order."""
    rubric_images: List[EncodedImage] = field(default_factory=list)
    exam_images: List[EncodedImage] = field(default_factory=list)
    instructions: str = ""
    language: Language = Language.ENGLISH


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python; unknown or mistyped fields are rejected
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        strict=True,
        extra="forbid",
    )


class QuestionResult(_WireModel):
    """Grading outcome for one question."""
    question_id: str = Field(description="Question number or label (e.g., '1', '2a')")
    score: float = Field(ge=0, description="Points earned for this question")
    max_score: float = Field(gt=0, description="Max points for this question")
    is_correct: bool = Field(description="Whether the answer is fully correct")
    student_answer: str = Field(description="Brief text description of the student's answer")
    correction: str = Field(description="The correct answer and explanation if wrong")
    rubric_reference: Optional[str] = Field(
        default=None,
        description="Quote the specific text from the rubric/answer key image that justifies this score."
    )
    comments: str = Field(description="Specific comments on this question")


class GradingResult(_WireModel):
    """Complete grading result for one student exam."""
    student_name: Optional[str] = Field(
        default=None,
        description="Inferred name of the student if visible, else 'Student'"
    )
    total_score: float = Field(ge=0, description="Total points earned")
    max_score: float = Field(ge=0, description="Total possible points")
    letter_grade: str = Field(description="Letter grade (A, B, C, etc.)")
    summary: str = Field(description="A brief summary of performance")
    constructive_feedback: str = Field(description="Encouraging feedback for the student")
    questions: List[QuestionResult] = Field(description="Per-question results in exam order")

    def to_yaml_dict(self) -> Dict[str, Any]:
        """Convert to dictionary suitable for YAML serialization."""
        result: Dict[str, Any] = {
            'total_score': self.total_score,
            'max_score': self.max_score,
            'letter_grade': self.letter_grade,
            'summary': self.summary,
            'constructive_feedback': self.constructive_feedback,
            'questions': [
                q.model_dump(by_alias=False, exclude_none=True) for q in self.questions
            ],
        }
        if self.student_name:
            result['student_name'] = self.student_name
        return result
