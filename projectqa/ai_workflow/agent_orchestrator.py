"""
agent_orchestrator.py
High-level orchestrator answering project questions with the tabular store + vector index.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from projectqa import logs
from projectqa.ai_workflow.agents.reviewer import review_result
from projectqa.ai_workflow.agents.source_planner import SourcePlanner
from projectqa.ai_workflow.agents.sql_generator import generate_sql_query
from projectqa.ai_workflow.agents.synthesizer import synthesize
from projectqa.ai_workflow.data_model import (
    AgentDecision,
    AgentRunResult,
    Approach,
    IterationResult,
    Mode,
    PlanStep,
)
from projectqa.ai_workflow.utils.common_utils import format_sql_results_for_llm
from projectqa.ai_workflow.utils.openai_utils import OpenAIOracle, OracleClient
from projectqa.cache import TTLCache
from projectqa.constants import (
    DEFAULT_SQL_LIMIT,
    EMBEDDING_CACHE_MAX_ENTRIES,
    EMBEDDING_CACHE_TTL_SECONDS,
    FAILED_ITERATION_CONFIDENCE,
    QUESTION_LOG_PREVIEW_CHARS,
    SQL_GENERATION_MAX_ATTEMPTS,
)
from projectqa.errors import ExecutionFailedError, QuestionCancelledError, RetrievalUnavailableError, SourceUnavailableError
from projectqa.query.engine import QueryEngine
from projectqa.retrieval.vector_ranker import VectorRanker, format_chunks
from projectqa.tabular.store import TabularRepository
from projectqa.utils import Timer, preview

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

FAILED_RESULT_TEXT = "Error occurred during execution"


def _check_cancelled(cancel_event: Optional[threading.Event], where: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise QuestionCancelledError(f"Question cancelled {where}")


class RetrievalAgent:
    '''
      Plans a question, executes the plan step by step with a review after each
      step, and synthesizes the retained results into one context.

      1. plan: SourcePlanner decides the ordered approaches
      2. run: execute -> review -> (next step | synthesize)
      3. answer: plan + run + run log
    '''

    def __init__(self,
                 repository: TabularRepository,
                 ranker: VectorRanker,
                 oracle: OracleClient,
                 sql_limit: int = DEFAULT_SQL_LIMIT,
                 sql_max_attempts: int = SQL_GENERATION_MAX_ATTEMPTS):
        self.repository = repository
        self.ranker = ranker
        self.oracle = oracle
        self.sql_limit = sql_limit
        self.sql_max_attempts = max(1, sql_max_attempts)
        self.planner = SourcePlanner(repository, oracle)

    # :::::: Planning :::::: #

    def plan(self, question: str, project_id: str,
             cancel_event: Optional[threading.Event] = None) -> AgentDecision:
        return self.planner.plan(question, project_id, cancel_event)

    # :::::: Execution :::::: #

    def _execute_sql(self, question: str, project_id: str,
                     cancel_event: Optional[threading.Event]) -> Tuple[str, Dict[str, Any]]:
        '''
            Try every table of the project, the first table whose generated query runs wins.
        '''
        store = self.repository.get_store(project_id)
        schemas = store.list_schemas()
        if not schemas:
            raise ExecutionFailedError(f"Project {project_id} has no tables")

        engine = QueryEngine(store)
        errors: List[str] = []
        for schema in schemas:
            previous_error = None
            for attempt in range(self.sql_max_attempts):
                _check_cancelled(cancel_event, "during SQL execution")

                generated = generate_sql_query(question, [schema], self.oracle, previous_error, cancel_event)
                if not generated.success:
                    previous_error = generated.error
                    logger.info(f"SQL generation attempt {attempt + 1} on '{schema.table}' failed: {previous_error}")
                    continue

                result = engine.execute(generated.query, {schema.table}, self.sql_limit)
                if result.success:
                    logger.info(f"SQL processing successful on '{schema.table}': {generated.query} ({len(result.rows)} rows)")
                    return format_sql_results_for_llm(result.rows, generated.query), {
                        "sql_query": generated.query,
                        "row_count": len(result.rows),
                        "table": schema.table,
                    }

                previous_error = str(result.error)
                logger.info(f"SQL attempt {attempt + 1} on '{schema.table}' rejected: {previous_error}")

            errors.append(f"{schema.table}: {previous_error}")

        raise ExecutionFailedError("SQL approach failed for every table: " + "; ".join(errors))

    def _execute_vector(self, question: str, project_id: str) -> Tuple[str, Dict[str, Any]]:
        chunks = self.ranker.retrieve(question, project_id)
        return format_chunks(chunks), {
            "chunk_count": len(chunks),
            "average_score": sum(c.score for c in chunks) / len(chunks) if chunks else 0.0,
            "token_count": sum(c.tokens for c in chunks),
        }

    def execute_iteration(self, question: str, project_id: str, step: PlanStep, iteration: int,
                          cancel_event: Optional[threading.Event] = None) -> Tuple[IterationResult, Optional[Exception]]:
        '''
            Execute and review one plan step.
            A failed execution becomes a low-confidence result and is not reviewed.
            Returns the result and the execution error, if any.
        '''
        logger.info(f"Executing iteration {iteration}: approach={step.approach.value}, reasoning={step.reasoning}")
        try:
            if step.approach == Approach.SQL:
                result, metadata = self._execute_sql(question, project_id, cancel_event)
            else:
                result, metadata = self._execute_vector(question, project_id)
        except QuestionCancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in iteration {iteration}: {e}", exc_info=True)
            return IterationResult(
                approach=step.approach,
                result=FAILED_RESULT_TEXT,
                confidence=FAILED_ITERATION_CONFIDENCE,
                reasoning="Execution failed",
                metadata={"error": str(e), "error_type": e.__class__.__name__},
            ), e

        _check_cancelled(cancel_event, "before review")
        review = review_result(question, step.approach, result, self.oracle, cancel_event)

        metadata["review"] = {
            "overall_score": review.overall_score,
            "should_try_alternative": review.should_try_alternative,
            "reasoning": review.reasoning,
            **review.details,
        }
        return IterationResult(
            approach=step.approach,
            result=result,
            confidence=review.overall_score,
            reasoning=review.reasoning,
            metadata=metadata,
        ), None

    def run(self, question: str, project_id: str, decision: AgentDecision,
            cancel_event: Optional[threading.Event] = None) -> AgentRunResult:
        """
        Execute a decision.

        Args:
            question: The user's question
            project_id: The project the question is asked in
            decision: The planner's decision
            cancel_event: Set by the caller to abandon the question

        Returns:
            AgentRunResult with the synthesized context

        Raises:
            RetrievalUnavailableError: every attempted step failed because its source was unreachable
            QuestionCancelledError: cancel_event was set, partial results are discarded
        """
        steps = list(decision.plan) or [PlanStep(approach=Approach.SQL if decision.mode == Mode.SQL else Approach.VECTOR,
                                                 reasoning=decision.selected_source.reasoning)]
        steps = steps[:max(1, decision.max_iterations)]

        iterations: List[IterationResult] = []
        errors: List[Exception] = []

        with Timer("Retrieval run") as timer:
            for i, step in enumerate(steps):
                _check_cancelled(cancel_event, f"before iteration {i + 1}")

                iteration, error = self.execute_iteration(question, project_id, step, i + 1, cancel_event)
                iterations.append(iteration)
                if error is not None:
                    errors.append(error)
                    continue

                # Hybrid runs every step, other modes stop once the reviewer is satisfied
                if decision.mode != Mode.HYBRID and not iteration.metadata["review"]["should_try_alternative"]:
                    logger.info(f"Stopping iterations - result deemed sufficient (confidence={iteration.confidence})")
                    break

            if decision.mode == Mode.SQL and iterations and iterations[-1].failed \
                    and iterations[-1].approach == Approach.SQL:
                logger.info("SQL approach failed, falling back to vector search")
                _check_cancelled(cancel_event, "before vector fallback")
                fallback_step = PlanStep(approach=Approach.VECTOR, reasoning="Fallback after SQL failure")
                iteration, error = self.execute_iteration(question, project_id, fallback_step,
                                                          len(iterations) + 1, cancel_event)
                iterations.append(iteration)
                if error is not None:
                    errors.append(error)

            if iterations and len(errors) == len(iterations) \
                    and all(isinstance(e, SourceUnavailableError) for e in errors):
                raise RetrievalUnavailableError(
                    "No retrieval source reachable: " + "; ".join(str(e) for e in errors)
                )

            _check_cancelled(cancel_event, "before synthesis")
            synthesis = synthesize(question, iterations, self.oracle, cancel_event)

        metadata = {
            "iterations": [it.to_dict() for it in iterations],
            "total_iterations": len(iterations),
            "confidence": synthesis.confidence,
            "reasoning": synthesis.reasoning,
            "sources_used": synthesis.sources_used,
            "selected_source": decision.selected_source.type.value,
            "duration_ms": timer.duration_ms,
        }
        logger.info(
            f"Agent execution completed: mode={decision.mode.value}, iterations={len(iterations)}, "
            f"context_length={len(synthesis.final_answer)}, duration={timer.duration_ms:.2f}ms"
        )
        return AgentRunResult(context=synthesis.final_answer, mode=decision.mode, metadata=metadata)

    def answer(self, question: str, project_id: str,
               cancel_event: Optional[threading.Event] = None) -> AgentRunResult:
        '''
            Plan and run a question, then record the run in the run log.
        '''
        logger.info(f"Agent analyzing question '{preview(question, QUESTION_LOG_PREVIEW_CHARS)}' for project {project_id}")
        decision = self.plan(question, project_id, cancel_event)
        result = self.run(question, project_id, decision, cancel_event)
        result.metadata["decision"] = {
            "type": decision.selected_source.type.value,
            "confidence": decision.selected_source.confidence,
            "reasoning": decision.selected_source.reasoning,
            "mode": decision.mode.value,
            "plan": [step.approach.value for step in decision.plan],
            "max_iterations": decision.max_iterations,
        }

        logs.log_run(
            question=question,
            project_id=project_id,
            mode=result.mode.value,
            context=result.context,
            confidence=result.metadata.get("confidence", 0.0),
            metadata=result.metadata,
        )
        return result


def build_default_agent(repository: Optional[TabularRepository] = None) -> RetrievalAgent:
    '''
        Wire the agent with the configured providers: OpenAI oracle, embedder and Pinecone index.
    '''
    from projectqa.embeddings import get_embedder
    from projectqa.vectorstores import get_vector_index

    ranker = VectorRanker(
        index=get_vector_index(),
        embedder=get_embedder(),
        cache=TTLCache(EMBEDDING_CACHE_TTL_SECONDS, EMBEDDING_CACHE_MAX_ENTRIES),
    )
    return RetrievalAgent(
        repository=repository or TabularRepository(),
        ranker=ranker,
        oracle=OracleClient(OpenAIOracle()),
    )
