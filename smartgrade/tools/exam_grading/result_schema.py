"""Validation of model output against the grading result contract."""

import logging
import math
from typing import Any, Dict, List

from pydantic import ValidationError

from .errors import MalformedResult
from .models import GradingResult

LOG = logging.getLogger(__name__)

# Tolerance for float sums such as 0.1 + 0.2
SCORE_TOLERANCE = 1e-6


def grading_result_json_schema() -> Dict[str, Any]:
    """JSON schema the model is asked to follow (camelCase field names)."""
    return GradingResult.model_json_schema(by_alias=True)


def parse_grading_result(text: str) -> GradingResult:
    """
    Parse a model response body into a GradingResult.

    The whole body must satisfy the schema; there is no partial extraction.

    Raises:
        MalformedResult: If the body is empty, not JSON, or does not match the schema
    """
    if not text or not text.strip():
        raise MalformedResult("No response text generated")
    try:
        return GradingResult.model_validate_json(text)
    except ValidationError as e:
        LOG.error("Model response does not match the grading schema: %s", e)
        raise MalformedResult(f"Response does not match the grading schema: {e}") from e


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=0, abs_tol=SCORE_TOLERANCE)


def check_consistency(result: GradingResult) -> List[str]:
    """Return human-readable warnings about score arithmetic; empty when consistent."""
    warnings = []
    for q in result.questions:
        if q.score > q.max_score + SCORE_TOLERANCE:
            warnings.append(
                f"Question {q.question_id}: score {q.score} exceeds max score {q.max_score}"
            )
    if result.total_score > result.max_score + SCORE_TOLERANCE:
        warnings.append(
            f"Total score {result.total_score} exceeds max score {result.max_score}"
        )
    # An empty question list sums to zero.
    score_sum = sum(q.score for q in result.questions)
    max_sum = sum(q.max_score for q in result.questions)
    if not _close(score_sum, result.total_score):
        warnings.append(
            f"Total score {result.total_score} does not equal the sum of question scores {score_sum}"
        )
    if not _close(max_sum, result.max_score):
        warnings.append(
            f"Max score {result.max_score} does not equal the sum of question max scores {max_sum}"
        )
    return warnings
