import logging
import threading
from typing import Optional

from projectqa.ai_workflow.data_model import Approach, Review
from projectqa.ai_workflow.utils.common_utils import clamp_score
from projectqa.ai_workflow.utils.json_decode import decode_json_object
from projectqa.ai_workflow.utils.openai_utils import OracleClient
from projectqa.constants import FALLBACK_REVIEW_SCORE
from projectqa.errors import OracleUnavailableError

logger = logging.getLogger(__name__)


def get_reviewer_system_prompt(question: str, approach: Approach, result: str) -> str:
    return f"""
You are the Reviewer. Evaluate if this data analysis result adequately answers the user's question.

Question: "{question}"
Approach Used: {approach.value}
Result: "{result}"

Evaluation Criteria:
1. Completeness (0-1): Does it fully answer the question?
2. Accuracy (0-1): Is the information correct?
3. Clarity (0-1): Is it clear and understandable?
4. Relevance (0-1): Is it relevant to the question?

Set shouldTryAlternative to true only if another approach could add something this result lacks.

Return a JSON object:
{{
  "overallScore": 0.85,
  "completeness": 0.9,
  "accuracy": 0.95,
  "clarity": 0.8,
  "relevance": 0.9,
  "missing": ["context about trends"],
  "improvements": ["add more context"],
  "shouldTryAlternative": true,
  "reasoning": "Good numerical data but lacks interpretation"
}}
"""


def fallback_review(reason: str = "Review unavailable") -> Review:
    return Review(overall_score=FALLBACK_REVIEW_SCORE, should_try_alternative=False, reasoning=reason)


def review_result(question: str,
                  approach: Approach,
                  result: str,
                  oracle: OracleClient,
                  cancel_event: Optional[threading.Event] = None) -> Review:
    try:
        response = oracle.complete(
            get_reviewer_system_prompt(question, approach, result),
            f'Review this result for the question: "{question}"',
            cancel_event,
        )
    except OracleUnavailableError as e:
        logger.warning(f"Review call failed, using fallback review: {e}")
        return fallback_review()

    decoded = decode_json_object(response)
    if not decoded.ok:
        logger.warning(f"Failed to parse review ({decoded.error}), using fallback review")
        return fallback_review()

    return _parse_review(decoded.value)


def _parse_review(data: dict) -> Review:
    # Only an explicit false stops the loop
    should_try = data.get("shouldTryAlternative", True)
    if not isinstance(should_try, bool):
        should_try = str(should_try).strip().lower() != "false"

    details = {
        k: v for k, v in data.items()
        if k not in ("overallScore", "shouldTryAlternative", "reasoning")
    }
    return Review(
        overall_score=clamp_score(data.get("overallScore"), FALLBACK_REVIEW_SCORE),
        should_try_alternative=should_try,
        reasoning=str(data.get("reasoning") or "Standard execution"),
        details=details,
    )
