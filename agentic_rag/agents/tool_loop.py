# =============================================================================
# Autonomous Tool Loop — Model-Driven Retrieval Strategy
# =============================================================================
#
# The alternative to the staged workflow: the model gets two capabilities
# and decides on its own whether, how often, and in what order to use them
# before answering.
#
#   search_documents(query)  : retrieval digest (top 5, semantic)
#   evaluate_documents(query): same yes/no relevance question as Grade
#
# LOOP:
#   user query ──▶ model turn ──▶ tool calls? ──yes──▶ run capabilities,
#                      ▲                               append results ─┐
#                      └───────────────────────────────────────────────┘
#                                    │ no
#                                    ▼
#                               final answer
#
# DESIGN DECISION: Capabilities never raise into the loop.
# A retrieval or grading failure becomes an error string the model reads
# back, so the loop keeps going. Only a failure of the loop's own
# completion call ends the run (CompletionServiceError propagates).
#
# DESIGN DECISION: Instrumented audit trail.
# Steps are recorded from the capability calls that actually happened,
# in call order, one step per invocation, then one "generate" step. The
# decision points are derived from those calls: a search means retrieval
# was needed, the last evaluate verdict is the grade. The grader sees the
# newest search first, so a refined search is what gets judged.
#
# DESIGN DECISION: Hand-written loop over native tool calling.
# No agent framework: each provider's complete_with_tools() speaks its own
# tool protocol, and the loop only sees ToolCall objects.
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from typing import Any

from agentic_rag.agents import prompts
from agentic_rag.agents.normalizer import normalize_result
from agentic_rag.agents.state import ExecutionState
from agentic_rag.agents.verdicts import RELEVANT_TOKEN, parse_verdict
from agentic_rag.config import settings
from agentic_rag.models.requests import ExecutionOptions
from agentic_rag.models.responses import ExecutionResult
from agentic_rag.services.llm import LLMProvider, ToolCall, ToolSpec
from agentic_rag.services.retrieval import SEMANTIC, RetrievalService, RetrievedDocument

logger = logging.getLogger(__name__)

SEARCH_TOOL = "search_documents"
EVALUATE_TOOL = "evaluate_documents"

_QUERY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Free-form text; usually the user's query.",
        },
    },
    "required": ["query"],
}

CAPABILITIES: list[ToolSpec] = [
    ToolSpec(
        name=SEARCH_TOOL,
        description=(
            "REQUIRED for any query that names a company or brand. Searches "
            "company-specific documents, brand guidelines, and proprietary "
            "information. Returns the top documents with scores."
        ),
        parameters=_QUERY_SCHEMA,
    ),
    ToolSpec(
        name=EVALUATE_TOOL,
        description=(
            "REQUIRED after search_documents. Judges whether the documents "
            "retrieved so far contain company-specific information, or "
            "whether to proceed with general knowledge."
        ),
        parameters=_QUERY_SCHEMA,
    ),
]

ACCEPTED_VERDICT = (
    "Documents are relevant and contain specific company/brand "
    "information. Use them in your response."
)
REJECTED_VERDICT = (
    "Documents are not relevant for this specific company query. "
    "Proceed with general knowledge."
)
NOTHING_TO_EVALUATE = (
    "No documents have been retrieved yet. Call search_documents first, "
    "or proceed with general knowledge."
)


class _CapabilitySession:
    """
    Capabilities bound to one run.

    Holds the run's state plus what the capabilities have observed so far
    (search texts, documents, last verdict). Nothing here outlives the run.
    """

    def __init__(
        self,
        state: ExecutionState,
        llm: LLMProvider,
        retrieval: RetrievalService,
        top_k: int,
        digest_chars: int,
        excerpt_chars: int,
    ) -> None:
        self.state = state
        self._llm = llm
        self._retrieval = retrieval
        self._top_k = top_k
        self._digest_chars = digest_chars
        self._excerpt_chars = excerpt_chars

        self.search_texts: list[str] = []
        self.documents: list[RetrievedDocument] = []
        self._search_results: list[list[RetrievedDocument]] = []
        self.last_verdict: bool | None = None
        self.calls = 0

    async def invoke(self, call: ToolCall, round_number: int) -> str:
        """Run one capability call and record it. Always returns text."""
        self.calls += 1
        text = _argument_text(call.arguments)

        if call.name == SEARCH_TOOL:
            result, outcome = await self._search(text)
        elif call.name == EVALUATE_TOOL:
            result, outcome = await self._evaluate(text)
        else:
            result = f"Unknown capability: {call.name}"
            outcome = {"error": result}

        self.state.recorder.record(
            f"tool_{call.name}",
            tool_name=call.name,
            arguments=call.arguments,
            round=round_number,
            **outcome,
        )
        return result

    async def _search(self, text: str) -> tuple[str, dict[str, Any]]:
        self.search_texts.append(text)
        logger.info("Tool loop search: query='%s'", text[:80])
        try:
            response = await self._retrieval.search(
                text, top=self._top_k, mode=SEMANTIC,
            )
        except Exception as e:
            logger.warning("Tool loop search failed: %s", e)
            return f"Error searching documents: {e}", {"error": str(e)}

        self.documents.extend(response.documents)
        self._search_results.append(list(response.documents))
        return (
            prompts.search_digest(response.documents, self._digest_chars),
            {"documents_found": len(response.documents)},
        )

    async def _evaluate(self, text: str) -> tuple[str, dict[str, Any]]:
        candidates = self._grading_candidates()
        if not candidates:
            return NOTHING_TO_EVALUATE, {"verdict": None}

        logger.info("Tool loop evaluate: query='%s'", text[:80])
        try:
            response = await self._llm.complete(
                messages=[{
                    "role": "user",
                    "content": prompts.grading_prompt(
                        text or self.state.user_query,
                        candidates,
                        self._excerpt_chars,
                    ),
                }],
                temperature=0.1,
                max_tokens=5,
            )
        except Exception as e:
            logger.warning("Tool loop evaluate failed: %s", e)
            return f"Error evaluating documents: {e}", {"error": str(e)}

        accepted = parse_verdict(response.content, RELEVANT_TOKEN)
        self.last_verdict = accepted
        return (
            ACCEPTED_VERDICT if accepted else REJECTED_VERDICT,
            {"verdict": accepted},
        )

    def _grading_candidates(self) -> list[RetrievedDocument]:
        """Documents from every search so far, newest search first, deduplicated."""
        seen: set[str] = set()
        candidates: list[RetrievedDocument] = []
        for documents in reversed(self._search_results):
            for doc in documents:
                if doc.content in seen:
                    continue
                seen.add(doc.content)
                candidates.append(doc)
        return candidates

    def settle(self) -> None:
        """Derive the run's decision points from the calls that happened."""
        searched = bool(self.search_texts)
        self.state.decide_retrieval(
            searched, search_query=self.search_texts[0] if searched else None,
        )
        if searched:
            self.state.add_documents(self.documents)
        if self.last_verdict is not None:
            self.state.grade(
                self.last_verdict,
                "" if self.last_verdict else "documents not relevant to query",
            )


class ToolLoopAgent:
    """
    Autonomous strategy: the model drives search/evaluate via tool calls.

    Args:
        llm: Completion Service (must support complete_with_tools).
        retrieval: Retrieval Service.
        max_rounds: Completion rounds before giving up.
        top_k: Documents requested per search.
        digest_chars: Per-document excerpt length in the search digest.
        excerpt_chars: Per-document excerpt length shown to the grader.
    """

    strategy_name = "tool_loop"
    workflow_version = "1.0.0"

    def __init__(
        self,
        llm: LLMProvider,
        retrieval: RetrievalService,
        *,
        max_rounds: int | None = None,
        top_k: int | None = None,
        digest_chars: int | None = None,
        excerpt_chars: int | None = None,
    ) -> None:
        self._llm = llm
        self._retrieval = retrieval
        self._max_rounds = (
            max_rounds if max_rounds is not None else settings.tool_loop_max_rounds
        )
        self._top_k = top_k if top_k is not None else settings.retrieval_top_k
        self._digest_chars = (
            digest_chars if digest_chars is not None else settings.search_digest_chars
        )
        self._excerpt_chars = (
            excerpt_chars if excerpt_chars is not None else settings.grade_excerpt_chars
        )

    async def run(
        self,
        query: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """
        Answer `query` by letting the model call capabilities.

        Raises:
            InvalidQueryError: `query` is empty or not text.
            CompletionServiceError: the loop's own completion call failed.
        """
        options = options or ExecutionOptions()
        max_retries = (
            options.max_retries
            if options.max_retries is not None
            else settings.max_retries
        )
        state = ExecutionState.start(query, max_retries=max_retries)
        started = time.monotonic()
        session = _CapabilitySession(
            state, self._llm, self._retrieval,
            self._top_k, self._digest_chars, self._excerpt_chars,
        )

        logger.info(
            "Tool loop run %s: query='%s'",
            state.session_id, state.user_query[:80],
        )

        answer, rounds, stopped = await self._loop(state, session)

        session.settle()
        state.recorder.record(
            "generate",
            rounds=rounds,
            capability_calls=session.calls,
            stopped=stopped,
        )
        state.finish(answer)

        logger.info(
            "Tool loop run %s complete: rounds=%d, capability_calls=%d, "
            "stopped=%s",
            state.session_id, rounds, session.calls, stopped,
        )

        return normalize_result(
            state,
            strategy_name=self.strategy_name,
            workflow_version=self.workflow_version,
            started=started,
        )

    async def _loop(
        self,
        state: ExecutionState,
        session: _CapabilitySession,
    ) -> tuple[str, int, str]:
        """Returns (answer, completion rounds used, stop reason)."""
        messages: list[dict[str, Any]] = [
            {"role": "user", "content": state.user_query},
        ]

        for round_number in range(1, self._max_rounds + 1):
            turn = await self._llm.complete_with_tools(
                messages,
                CAPABILITIES,
                system=prompts.TOOL_LOOP_SYSTEM,
                temperature=0.1,
            )

            if not turn.tool_calls:
                return turn.content, round_number, "answered"

            logger.info(
                "Round %d: model requested %s",
                round_number, [call.name for call in turn.tool_calls],
            )
            messages.append({
                "role": "assistant",
                "content": turn.content,
                "tool_calls": turn.tool_calls,
            })
            for call in turn.tool_calls:
                result = await session.invoke(call, round_number)
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": result,
                })

        logger.warning(
            "Tool loop hit its ceiling of %d rounds without an answer",
            self._max_rounds,
        )
        return prompts.TOOL_LIMIT_ANSWER, self._max_rounds, "round_limit"


def _argument_text(arguments: dict[str, Any]) -> str:
    """Pull the free-form text argument out of a tool call."""
    for key in ("query", "input"):
        value = arguments.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return json.dumps(arguments) if arguments else ""
