# =============================================================================
# Decision Workflow — Staged Retrieval Decision Engine
# =============================================================================
#
# Runs one query through a fixed four-stage state machine:
#
#   START ──▶ analyze ──┬──▶ retrieve ──▶ grade ──▶ generate ──▶ END
#                       └──────────────────────────▶ generate ──▶ END
#
#   analyze : ask the model RETRIEVE or GENERATE
#   retrieve: search the index with the user's query (top 5, semantic)
#   grade   : ask the model whether the documents are company-specific
#   generate: answer from the documents if accepted, else general knowledge
#
# DESIGN DECISION: Explicit enum state machine, no graph runtime.
# The topology is fixed and tiny. A dispatch table from Stage to handler,
# where each handler returns the next Stage (or None at the end), keeps
# the control flow readable in one screen and trivially testable.
#
# DESIGN DECISION: Never throw past run() for downstream failures.
# Each stage absorbs Completion/Retrieval failures and degrades to a safe
# default: GENERATE decision, zero documents, rejected grade, fallback
# answer. The answer gets worse; the run still completes. Cancellation
# (asyncio.CancelledError) is not an Exception and always propagates.
#
# DESIGN DECISION: Record the step on entry.
# Every stage appends its step before calling out, so the audit trail
# shows the stage even when its external call fails.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable

from agentic_rag.agents import prompts
from agentic_rag.agents.normalizer import normalize_result
from agentic_rag.agents.state import ExecutionState, Stage
from agentic_rag.agents.verdicts import RELEVANT_TOKEN, RETRIEVE_TOKEN, parse_verdict
from agentic_rag.config import settings
from agentic_rag.errors import RecursionLimitError
from agentic_rag.models.requests import ExecutionOptions
from agentic_rag.models.responses import ExecutionResult
from agentic_rag.services.llm import LLMProvider
from agentic_rag.services.retrieval import SEMANTIC, RetrievalService

logger = logging.getLogger(__name__)

NO_DOCUMENTS_REASON = "no documents retrieved"
NOT_RELEVANT_REASON = "documents not relevant to query"
GRADING_ERROR_REASON = "error evaluating document relevance"

StageHandler = Callable[[ExecutionState], Awaitable["Stage | None"]]


class DecisionWorkflow:
    """
    Staged strategy: analyze → (retrieve → grade) → generate.

    Args:
        llm: Completion Service.
        retrieval: Retrieval Service.
        top_k: Documents requested from the Retrieval Service.
        excerpt_chars: Per-document excerpt length shown to the grader.
        recursion_limit: Max stage transitions per run.
    """

    strategy_name = "workflow"
    workflow_version = "1.0.0"

    def __init__(
        self,
        llm: LLMProvider,
        retrieval: RetrievalService,
        *,
        top_k: int | None = None,
        excerpt_chars: int | None = None,
        recursion_limit: int | None = None,
    ) -> None:
        self._llm = llm
        self._retrieval = retrieval
        self._top_k = top_k if top_k is not None else settings.retrieval_top_k
        self._excerpt_chars = (
            excerpt_chars if excerpt_chars is not None else settings.grade_excerpt_chars
        )
        self._recursion_limit = (
            recursion_limit
            if recursion_limit is not None
            else settings.workflow_recursion_limit
        )
        self._stages: dict[Stage, StageHandler] = {
            Stage.ANALYZE: self._analyze,
            Stage.RETRIEVE: self._retrieve,
            Stage.GRADE: self._grade,
            Stage.GENERATE: self._generate,
        }

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def run(
        self,
        query: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """
        Answer `query` and return the normalised result.

        Raises:
            InvalidQueryError: `query` is empty or not text.
        """
        options = options or ExecutionOptions()
        max_retries = (
            options.max_retries
            if options.max_retries is not None
            else settings.max_retries
        )
        state = ExecutionState.start(query, max_retries=max_retries)
        started = time.monotonic()

        logger.info(
            "Workflow run %s: query='%s'",
            state.session_id, state.user_query[:80],
        )

        await self._drive(state)

        logger.info(
            "Workflow run %s complete: steps=%d, needs_retrieval=%s, "
            "accepted=%s",
            state.session_id, len(state.recorder),
            state.needs_retrieval, state.retrieval_accepted,
        )

        return normalize_result(
            state,
            strategy_name=self.strategy_name,
            workflow_version=self.workflow_version,
            started=started,
        )

    # -----------------------------------------------------------------------
    # State Machine Driver
    # -----------------------------------------------------------------------

    async def _drive(self, state: ExecutionState) -> None:
        stage: Stage | None = Stage.ANALYZE
        transitions = 0
        while stage is not None:
            if transitions >= self._recursion_limit:
                raise RecursionLimitError(
                    f"workflow exceeded {self._recursion_limit} stage transitions"
                )
            transitions += 1
            stage = await self._stages[stage](state)

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------
    # Each stage records its step, does its work, and returns the next
    # stage. External failures are logged and replaced by a safe default.
    # -----------------------------------------------------------------------

    async def _analyze(self, state: ExecutionState) -> Stage:
        state.recorder.record(Stage.ANALYZE.value, user_query=state.user_query)

        try:
            response = await self._llm.complete(
                messages=[{
                    "role": "user",
                    "content": prompts.analysis_prompt(state.user_query),
                }],
                temperature=0.1,
                max_tokens=10,
            )
            needs_retrieval = parse_verdict(response.content, RETRIEVE_TOKEN)
        except Exception as e:
            logger.warning("Analyze failed, defaulting to GENERATE: %s", e)
            needs_retrieval = False

        state.decide_retrieval(needs_retrieval)
        logger.info(
            "Analyze decision: %s",
            "RETRIEVE" if needs_retrieval else "GENERATE",
        )
        return Stage.RETRIEVE if needs_retrieval else Stage.GENERATE

    async def _retrieve(self, state: ExecutionState) -> Stage:
        state.recorder.record(
            Stage.RETRIEVE.value,
            search_query=state.search_query,
            retry_count=state.retry_count,
        )

        try:
            response = await self._retrieval.search(
                state.search_query, top=self._top_k, mode=SEMANTIC,
            )
            documents = response.documents
        except Exception as e:
            logger.warning("Retrieve failed, continuing with 0 documents: %s", e)
            documents = []

        state.add_documents(documents)
        logger.info("Retrieved %d documents", len(documents))
        return Stage.GRADE

    async def _grade(self, state: ExecutionState) -> Stage:
        state.recorder.record(
            Stage.GRADE.value,
            document_count=len(state.retrieved_documents),
        )

        if not state.retrieved_documents:
            state.grade(False, NO_DOCUMENTS_REASON)
            logger.info("Grade: rejected (%s)", NO_DOCUMENTS_REASON)
            return Stage.GENERATE

        try:
            response = await self._llm.complete(
                messages=[{
                    "role": "user",
                    "content": prompts.grading_prompt(
                        state.user_query,
                        state.retrieved_documents,
                        self._excerpt_chars,
                    ),
                }],
                temperature=0.1,
                max_tokens=5,
            )
            accepted = parse_verdict(response.content, RELEVANT_TOKEN)
            reason = "" if accepted else NOT_RELEVANT_REASON
        except Exception as e:
            logger.warning("Grade failed, rejecting documents: %s", e)
            accepted, reason = False, GRADING_ERROR_REASON

        state.grade(accepted, reason)
        logger.info(
            "Grade: %s", "accepted" if accepted else f"rejected ({reason})",
        )
        return Stage.GENERATE

    async def _generate(self, state: ExecutionState) -> None:
        state.recorder.record(
            Stage.GENERATE.value,
            retrieval_accepted=state.retrieval_accepted,
            document_count=len(state.retrieved_documents),
        )

        if state.retrieval_accepted:
            prompt = prompts.answer_prompt(
                state.user_query, state.retrieved_documents,
            )
        else:
            prompt = prompts.general_knowledge_prompt(
                state.user_query, state.rejection_reason,
            )

        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": prompt}],
                temperature=0.7,
                max_tokens=settings.answer_max_tokens,
            )
            answer = response.content
        except Exception as e:
            logger.warning("Generate failed, using fallback answer: %s", e)
            answer = prompts.FALLBACK_ANSWER

        state.finish(answer)
        return None
