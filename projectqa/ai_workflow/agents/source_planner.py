"""
source_planner.py
AI agent deciding which retrieval sources to try for a question, and in which order.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional

from projectqa.ai_workflow.agents.question_analyzer import analyze_question_complexity, is_sql_suitable_question
from projectqa.ai_workflow.data_model import AgentDecision, Approach, DataSource, Mode, PlanStep, SourceType
from projectqa.ai_workflow.utils.json_decode import decode_json_object
from projectqa.ai_workflow.utils.openai_utils import OracleClient
from projectqa.constants import (
    ALTERNATIVE_CONFIDENCE_STEP,
    DEFAULT_MAX_ITERATIONS,
    FALLBACK_DECISION_CONFIDENCE,
    FALLBACK_PLAN_MAX_ITERATIONS,
    FIRST_ALTERNATIVE_CONFIDENCE,
    MAX_ITERATIONS_CAP,
    QUESTION_LOG_PREVIEW_CHARS,
    SELECTED_SOURCE_CONFIDENCE,
)
from projectqa.errors import QuestionCancelledError
from projectqa.tabular.store import TabularRepository
from projectqa.utils import preview

logger = logging.getLogger(__name__)

SQL_CAPABILITIES = [
    'numerical_aggregation',
    'filtering_sorting',
    'structured_queries',
]

VECTOR_CAPABILITIES = [
    'semantic_search',
    'context_understanding',
    'pattern_recognition',
    'interpretation',
    'cross_reference',
]


def get_planner_system_prompt(question: str, available_sources: List[Dict[str, Any]], signals_str: str) -> str:
    return f"""
You are the Source Planner of an iterative data analysis agent. Your job is to decide which
retrieval approaches to try, in order, to answer the question.

Question: "{question}"

Available Data Sources:
{json.dumps(available_sources, indent=2)}

Question signals (keyword heuristics, use as a hint only):
{signals_str}

Approaches:
- "sql": query the project's spreadsheet tables. Precise counts, sums, averages, filtering and sorting.
  Only possible when an "excel-sql" source is listed.
- "vector": semantic search over the project's documents. Context, explanations, interpretation.

Rules:
- Start with the most promising approach.
- Add a second approach only if the first one may leave the question partly unanswered.
- maxIterations is between 1 and {MAX_ITERATIONS_CAP}.

Return a JSON object:
{{
  "plan": [
    {{
      "approach": "sql",
      "reasoning": "Question asks for numerical data, SQL will be most precise",
      "expectedOutcome": "Exact counts and aggregations"
    }},
    {{
      "approach": "vector",
      "reasoning": "May need context and interpretation",
      "expectedOutcome": "Additional insights and explanations"
    }}
  ],
  "maxIterations": 3
}}
"""


def fallback_plan() -> Dict[str, Any]:
    return {
        "plan": [
            {"approach": "sql", "reasoning": "fallback"},
            {"approach": "vector", "reasoning": "fallback"},
        ],
        "maxIterations": FALLBACK_PLAN_MAX_ITERATIONS,
    }


def fallback_decision(reason: str = "Fallback to vector search due to error") -> AgentDecision:
    source = DataSource(
        type=SourceType.VECTOR_SEARCH,
        confidence=FALLBACK_DECISION_CONFIDENCE,
        reasoning=reason,
    )
    return AgentDecision(
        selected_source=source,
        alternatives=(),
        mode=Mode.VECTOR,
        plan=(PlanStep(approach=Approach.VECTOR, reasoning=reason),),
        max_iterations=1,
        context="Fallback mode",
    )


def alternative_confidence(position: int) -> float:
    """Confidence of the alternative at a 0-based position: 0.6, 0.5, 0.4, ... floored at 0."""
    return round(max(0.0, FIRST_ALTERNATIVE_CONFIDENCE - ALTERNATIVE_CONFIDENCE_STEP * position), 2)


def _parse_max_iterations(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_MAX_ITERATIONS
    try:
        max_iterations = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_ITERATIONS
    return max(1, min(max_iterations, MAX_ITERATIONS_CAP))


def _parse_plan_steps(raw_plan: Any) -> List[PlanStep]:
    if not isinstance(raw_plan, list):
        return []
    steps = []
    for item in raw_plan:
        if not isinstance(item, dict):
            continue
        steps.append(PlanStep(
            approach=Approach.from_text(item.get("approach", "")),
            reasoning=str(item.get("reasoning") or "Alternative approach"),
            expected_outcome=str(item.get("expectedOutcome") or ""),
        ))
    return steps


class SourcePlanner:
    '''
      Builds the AgentDecision for a question. Planning never fails: malformed
      oracle output gives the fallback plan, any error gives the vector fallback decision.
    '''

    def __init__(self, repository: TabularRepository, oracle: OracleClient):
        self.repository = repository
        self.oracle = oracle

    def get_available_sources(self, project_id: str) -> List[Dict[str, Any]]:
        sources = []

        if self.repository.has_tables(project_id):
            schemas = self.repository.get_store(project_id).list_schemas()
            sources.append({
                "type": SourceType.EXCEL_SQL.value,
                "tables": [
                    {"table": s.table, "columns": list(s.columns), "rowCount": s.row_count, "columnCount": len(s.columns)}
                    for s in schemas
                ],
                "capabilities": SQL_CAPABILITIES,
                "tableCount": len(schemas),
                "totalRows": sum(s.row_count for s in schemas),
            })

        # Vector search is always available
        sources.append({
            "type": SourceType.VECTOR_SEARCH.value,
            "capabilities": VECTOR_CAPABILITIES,
        })

        return sources

    def plan(self, question: str, project_id: str,
             cancel_event: Optional[threading.Event] = None) -> AgentDecision:
        try:
            return self._plan(question, project_id, cancel_event)
        except QuestionCancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in source planning: {e}", exc_info=True)
            return fallback_decision()

    def _plan(self, question: str, project_id: str,
              cancel_event: Optional[threading.Event]) -> AgentDecision:
        available_sources = self.get_available_sources(project_id)
        sql_available = any(s["type"] == SourceType.EXCEL_SQL.value for s in available_sources)
        table_names = tuple(
            t["table"] for s in available_sources if s["type"] == SourceType.EXCEL_SQL.value for t in s["tables"]
        )

        signals = analyze_question_complexity(question)
        signals_str = (
            f"complexity={signals.complexity.value}, features={signals.features}, "
            f"sql_suitable={is_sql_suitable_question(question)}, vector_suitable={signals.vector_suitable}"
        )

        system_prompt = get_planner_system_prompt(question, available_sources, signals_str)
        response = self.oracle.complete(
            system_prompt,
            f'Analyze this question and create an iterative analysis plan: "{question}"',
            cancel_event,
        )

        decoded = decode_json_object(response)
        plan = decoded.value if decoded.ok else None
        steps = _parse_plan_steps(plan.get("plan")) if plan else []
        if not steps:
            logger.warning(f"Failed to parse agent plan ({decoded.error or 'no steps'}), using fallback")
            plan = fallback_plan()
            steps = _parse_plan_steps(plan["plan"])

        max_iterations = _parse_max_iterations(plan.get("maxIterations", DEFAULT_MAX_ITERATIONS))

        if not sql_available:
            steps = [s for s in steps if s.approach != Approach.SQL]
            # Collapse back-to-back repeats of one approach
            steps = [s for i, s in enumerate(steps) if i == 0 or s.approach != steps[i - 1].approach]
            if not steps:
                steps = [PlanStep(approach=Approach.VECTOR, reasoning="No tabular data in this project")]

        first, rest = steps[0], steps[1:]
        selected_source = DataSource(
            type=first.approach.source_type,
            confidence=SELECTED_SOURCE_CONFIDENCE,
            reasoning=first.reasoning,
            tables=table_names if first.approach == Approach.SQL else (),
        )
        alternatives = tuple(
            DataSource(
                type=step.approach.source_type,
                confidence=alternative_confidence(i),
                reasoning=step.reasoning,
                tables=table_names if step.approach == Approach.SQL else (),
            )
            for i, step in enumerate(rest)
        )

        if len(steps) > 1:
            mode = Mode.ITERATIVE
        else:
            mode = Mode.SQL if first.approach == Approach.SQL else Mode.VECTOR

        decision = AgentDecision(
            selected_source=selected_source,
            alternatives=alternatives,
            mode=mode,
            plan=tuple(steps),
            max_iterations=max_iterations,
            context=f"Iterative plan with {len(steps)} approaches",
        )

        logger.info(
            f"Agent decision for '{preview(question, QUESTION_LOG_PREVIEW_CHARS)}': "
            f"type={selected_source.type.value}, mode={mode.value}, steps={len(steps)}, "
            f"max_iterations={max_iterations}"
        )
        return decision
