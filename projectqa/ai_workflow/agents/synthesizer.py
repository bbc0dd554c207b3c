"""
synthesizer.py
AI agent merging the iteration results into the final context.
"""
import logging
import threading
from typing import List, Optional, Sequence

from projectqa.ai_workflow.data_model import IterationResult, Synthesis
from projectqa.ai_workflow.utils.common_utils import average_confidence, clamp_score, get_iterations_str
from projectqa.ai_workflow.utils.json_decode import decode_json_object
from projectqa.ai_workflow.utils.openai_utils import OracleClient
from projectqa.errors import OracleUnavailableError

logger = logging.getLogger(__name__)


def get_synthesizer_system_prompt(question: str, iterations: Sequence[IterationResult]) -> str:
    return f"""
You are the Synthesizer. Merge multiple data analysis results into one comprehensive answer.

Question: "{question}"

Results from different approaches:
{get_iterations_str(iterations)}

Your task:
1. Combine the best parts of each result
2. Eliminate redundancy
3. Keep every number and fact the answer relies on
4. Provide a clear, coherent answer with a confidence level and reasoning

Return a JSON object:
{{
  "finalAnswer": "Comprehensive answer combining all approaches",
  "confidence": 0.92,
  "reasoning": "Combined precise SQL data with vector search context",
  "sourcesUsed": ["sql", "vector"]
}}
"""


def _sources_used(iterations: Sequence[IterationResult]) -> List[str]:
    sources: List[str] = []
    for it in iterations:
        if not it.failed and it.approach.value not in sources:
            sources.append(it.approach.value)
    return sources


def fallback_synthesis(iterations: Sequence[IterationResult]) -> Synthesis:
    '''
        Deterministic merge: results in order separated by a blank line, confidences averaged.
    '''
    return Synthesis(
        final_answer="\n\n".join(it.result for it in iterations),
        confidence=average_confidence(iterations),
        reasoning="Combined all results",
        sources_used=_sources_used(iterations),
    )


def synthesize(question: str,
               iterations: Sequence[IterationResult],
               oracle: OracleClient,
               cancel_event: Optional[threading.Event] = None) -> Synthesis:
    if not iterations:
        return fallback_synthesis(iterations)

    try:
        response = oracle.complete(
            get_synthesizer_system_prompt(question, iterations),
            f'Synthesize the results for: "{question}"',
            cancel_event,
        )
    except OracleUnavailableError as e:
        logger.warning(f"Synthesis call failed, combining results directly: {e}")
        return fallback_synthesis(iterations)

    decoded = decode_json_object(response)
    final_answer = decoded.value.get("finalAnswer") if decoded.ok else None
    if not isinstance(final_answer, str) or not final_answer.strip():
        logger.warning(f"Failed to parse synthesis ({decoded.error or 'no finalAnswer'}), combining results directly")
        return fallback_synthesis(iterations)

    sources = decoded.value.get("sourcesUsed")
    return Synthesis(
        final_answer=final_answer,
        confidence=clamp_score(decoded.value.get("confidence"), average_confidence(iterations)),
        reasoning=str(decoded.value.get("reasoning") or "Combined all results"),
        sources_used=[str(s) for s in sources] if isinstance(sources, list) else _sources_used(iterations),
    )
