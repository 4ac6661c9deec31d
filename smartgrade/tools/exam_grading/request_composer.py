"""Build the ordered text and image segments sent to the model."""

import logging
import textwrap
from dataclasses import dataclass
from typing import List, Optional, Union

from smartgrade.libs.media_encoder import EncodedImage
from .errors import InvalidRequest
from .instruction_ledger import combine_instructions
from .models import GradingRequest, Language

LOG = logging.getLogger(__name__)

RUBRIC_GROUP = "rubric"
EXAM_GROUP = "exam"

PAGE_LABELS = {
    RUBRIC_GROUP: "Rubric Page",
    EXAM_GROUP: "Student Exam Page",
}

LANGUAGE_DIRECTIVES = {
    Language.ENGLISH: "IMPORTANT: Provide all text fields in English.",
    Language.CHINESE: (
        "IMPORTANT: Provide ALL text fields (summary, constructiveFeedback, studentAnswer, "
        "correction, comments, rubricReference) in Simplified Chinese (简体中文)."
    ),
}

RULE_LANGUAGES = {
    Language.ENGLISH: "English",
    Language.CHINESE: "Simplified Chinese (简体中文)",
}


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ImageSegment:
    image: EncodedImage
    group: str
    page: int


Segment = Union[TextSegment, ImageSegment]


def page_marker(group: str, page: int) -> str:
    return f"[Image: {PAGE_LABELS[group]} {page}]"


def validate_request(request: GradingRequest,
                     max_rubric_pages: Optional[int] = None,
                     max_exam_pages: Optional[int] = None) -> None:
    """
    Check the preconditions of a grading request.

    Raises:
        InvalidRequest: If an image group is empty or over its page limit
    """
    if not request.rubric_images or not request.exam_images:
        raise InvalidRequest("Please upload at least one exam image and one rubric/key image.")
    if max_rubric_pages is not None and len(request.rubric_images) > max_rubric_pages:
        raise InvalidRequest(
            f"Too many rubric pages: {len(request.rubric_images)} (limit {max_rubric_pages})"
        )
    if max_exam_pages is not None and len(request.exam_images) > max_exam_pages:
        raise InvalidRequest(
            f"Too many exam pages: {len(request.exam_images)} (limit {max_exam_pages})"
        )


def build_grading_prompt(instructions: str, language: Language) -> str:
    """Task framing, language directive, grading policy and teacher instructions."""
    prompt = textwrap.dedent(f"""\
        You are an expert academic grader for K-12 education.
        Your task is to grade a student's exam paper based on the provided answer key (rubric) and optional instructions.

        {LANGUAGE_DIRECTIVES[language]}

        Instructions:
        1. Analyze the 'Rubric/Answer Key' images to understand the correct answers and point distribution.
        2. Analyze the 'Student Exam' images. Questions are matched to the rubric by their order across the pages.
        3. Grade each question carefully. Partial credit is allowed if the rubric implies it or if the student shows partial understanding (unless strict grading is requested).
        4. For every question, you MUST quote the specific part of the rubric/answer key that explains why you gave that score in the 'rubricReference' field.
        5. Be fair, consistent, and constructive.
        6. If the student's handwriting is illegible, mark it as 0 and note it in comments.
        7. Return the result in the specified JSON format.""")

    if instructions.strip():
        prompt += f"\n\nAdditional Teacher Instructions: {instructions.strip()}"

    prompt += "\n\nBelow are the images. First, the Answer Key/Rubric, then the Student Exam."
    return prompt


def _image_segments(images: List[EncodedImage], group: str) -> List[Segment]:
    segments: List[Segment] = []
    for index, image in enumerate(images, start=1):
        segments.append(TextSegment(page_marker(group, index)))
        segments.append(ImageSegment(image=image, group=group, page=index))
    return segments


def compose_grading_request(request: GradingRequest,
                            ledger_text: str = "",
                            max_rubric_pages: Optional[int] = None,
                            max_exam_pages: Optional[int] = None) -> List[Segment]:
    """
    Serialize a grading request into the segment sequence the model consumes.

    The sequence is one instruction segment, then every rubric page, then
    every exam page, each page preceded by its marker and kept in upload order.

    Raises:
        InvalidRequest: If either image group is empty or over its limit
    """
    validate_request(request, max_rubric_pages, max_exam_pages)

    instructions = combine_instructions(request.instructions, ledger_text)
    segments: List[Segment] = [TextSegment(build_grading_prompt(instructions, request.language))]
    segments.extend(_image_segments(request.rubric_images, RUBRIC_GROUP))
    segments.extend(_image_segments(request.exam_images, EXAM_GROUP))

    LOG.debug("Composed grading request: %d rubric page(s), %d exam page(s)",
              len(request.rubric_images), len(request.exam_images))
    return segments


REFINEMENT_PROMPT = textwrap.dedent("""\
    You are a helpful assistant for a teacher.
    The teacher is providing feedback on how an exam was graded to improve future grading consistency.

    Current Instructions: "{instructions}"

    Teacher's Complaint/Feedback: "{feedback}"

    Task:
    Based on the teacher's feedback, formulate a clear, concise, and specific instruction rule that should be added to the grading instructions.
    This new rule should ensure that the AI grader accounts for the specific issue mentioned by the teacher (e.g., deducting points for missing keywords or checking for specific concepts).

    Output Format:
    Return ONLY the text of the new instruction rule, as a single sentence or paragraph. Do not include conversational text.
    Write the rule in {rule_language}.""")


def compose_refinement_request(ledger_text: str, feedback: str, language: Language) -> List[Segment]:
    """
    Build the single text segment asking the model for one new grading rule.

    Raises:
        InvalidRequest: If the feedback is empty
    """
    feedback = (feedback or "").strip()
    if not feedback:
        raise InvalidRequest("Feedback must not be empty")

    prompt = REFINEMENT_PROMPT.format(
        instructions=(ledger_text or "").strip(),
        feedback=feedback,
        rule_language=RULE_LANGUAGES[language],
    )
    return [TextSegment(prompt)]
