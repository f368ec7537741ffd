# =============================================================================
# Unit Tests — Autonomous Tool Loop
# =============================================================================
#
# Scripts the model's tool-calling turns with AsyncMock and checks that the
# loop runs the requested capabilities, feeds results back, and records
# exactly the calls that happened.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from agentic_rag.agents.prompts import TOOL_LIMIT_ANSWER
from agentic_rag.agents.tool_loop import (
    ACCEPTED_VERDICT,
    CAPABILITIES,
    NOTHING_TO_EVALUATE,
    REJECTED_VERDICT,
    ToolLoopAgent,
    _argument_text,
)
from agentic_rag.errors import CompletionServiceError, InvalidQueryError, RetrievalServiceError
from agentic_rag.services.llm import LLMResponse, ToolCall, ToolTurn
from agentic_rag.services.retrieval import RetrievedDocument, SearchResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _turn(*calls: ToolCall, content: str = "") -> ToolTurn:
    return ToolTurn(
        content=content, tool_calls=list(calls), model="mock",
        input_tokens=20, output_tokens=10,
    )


def _answer(text: str) -> ToolTurn:
    return _turn(content=text)


def _search(call_id: str = "c1", query: str = "Adobe brand guidelines") -> ToolCall:
    return ToolCall(id=call_id, name="search_documents", arguments={"query": query})


def _evaluate(call_id: str = "c2", query: str = "Adobe brand guidelines") -> ToolCall:
    return ToolCall(id=call_id, name="evaluate_documents", arguments={"query": query})


def _llm(turns, grades=()) -> AsyncMock:
    llm = AsyncMock()
    llm.complete_with_tools.side_effect = list(turns)
    llm.complete.side_effect = [
        LLMResponse(content=g, model="mock", input_tokens=5, output_tokens=1)
        for g in grades
    ]
    return llm


def _retrieval(*contents: str) -> AsyncMock:
    docs = [
        RetrievedDocument(content=c, score=0.9 - i * 0.1, metadata={})
        for i, c in enumerate(contents)
    ]
    retrieval = AsyncMock()
    retrieval.search.return_value = SearchResponse(documents=docs, total_count=len(docs))
    return retrieval


def _steps(result) -> list[str]:
    return [s.step for s in result.explainability.execution_steps]


# ---------------------------------------------------------------------------
# Test: Answering without capabilities
# ---------------------------------------------------------------------------


class TestDirectAnswer:
    """The model answers on its first turn."""

    def test_no_tool_calls_means_no_retrieval(self):
        llm = _llm([_answer("Recursion is self-reference.")])
        retrieval = _retrieval()
        result = _run(ToolLoopAgent(llm, retrieval).run("Explain recursion"))

        assert result.answer == "Recursion is self-reference."
        assert _steps(result) == ["generate"]
        points = result.explainability.decision_points
        assert points.needs_retrieval is False
        assert points.retrieval_accepted is None
        assert result.explainability.retrieval_details is None
        retrieval.search.assert_not_awaited()

    def test_capabilities_and_directive_are_offered(self):
        llm = _llm([_answer("hi")])
        _run(ToolLoopAgent(llm, _retrieval()).run("Hello"))

        call = llm.complete_with_tools.call_args
        assert [t.name for t in call.args[1]] == ["search_documents", "evaluate_documents"]
        assert call.kwargs["system"]
        assert call.kwargs["temperature"] == 0.1

    def test_metadata_names_the_strategy(self):
        llm = _llm([_answer("hi")])
        result = _run(ToolLoopAgent(llm, _retrieval()).run("Hello"))
        assert result.metadata.strategy_name == "tool_loop"
        assert result.metadata.workflow_version == "1.0.0"


# ---------------------------------------------------------------------------
# Test: Search then evaluate
# ---------------------------------------------------------------------------


class TestSearchAndEvaluate:
    """The typical path: search, evaluate, answer."""

    def test_accepted_documents(self):
        llm = _llm(
            [_turn(_search()), _turn(_evaluate()), _answer("Adobe red is #FA0F00.")],
            grades=["yes"],
        )
        retrieval = _retrieval("Adobe red is #FA0F00.", "Adobe Clean typeface.")
        result = _run(ToolLoopAgent(llm, retrieval).run("Summarise Adobe's brand"))

        explain = result.explainability
        assert _steps(result) == [
            "tool_search_documents", "tool_evaluate_documents", "generate",
        ]
        assert explain.decision_points.needs_retrieval is True
        assert explain.decision_points.retrieval_accepted is True
        assert explain.rejection_reason is None
        assert explain.retrieval_details.search_query == "Adobe brand guidelines"
        assert explain.retrieval_details.documents_found == 2
        assert result.answer == "Adobe red is #FA0F00."

    def test_rejected_documents(self):
        llm = _llm(
            [_turn(_search(), _evaluate()), _answer("General answer.")],
            grades=["no"],
        )
        result = _run(ToolLoopAgent(llm, _retrieval("Unrelated.")).run("Adobe"))

        explain = result.explainability
        assert explain.decision_points.retrieval_accepted is False
        assert explain.rejection_reason == "documents not relevant to query"

    def test_results_are_fed_back_as_tool_messages(self):
        llm = _llm(
            [_turn(_search("call-9")), _answer("done")],
        )
        _run(ToolLoopAgent(llm, _retrieval("Adobe Clean typeface.")).run("Adobe"))

        transcript = llm.complete_with_tools.call_args_list[1].args[0]
        assistant, tool = transcript[1], transcript[2]
        assert assistant["role"] == "assistant"
        assert assistant["tool_calls"][0].id == "call-9"
        assert tool["role"] == "tool"
        assert tool["tool_call_id"] == "call-9"
        assert tool["name"] == "search_documents"
        assert tool["content"].startswith("Found 1 relevant documents:")
        assert "Document 1 (Score: 0.90):" in tool["content"]

    def test_verdict_text_returned_to_model(self):
        llm = _llm(
            [_turn(_search()), _turn(_evaluate("e1")), _answer("done")],
            grades=["Yes, relevant."],
        )
        _run(ToolLoopAgent(llm, _retrieval("Adobe doc")).run("Adobe"))

        transcript = llm.complete_with_tools.call_args_list[2].args[0]
        assert transcript[-1]["content"] == ACCEPTED_VERDICT

    def test_refined_search_is_graded_first(self):
        generic = [f"GENERIC-ADVICE {i}" for i in range(5)]
        retrieval = AsyncMock()
        retrieval.search.side_effect = [
            SearchResponse(
                documents=[RetrievedDocument(content=c, score=0.5) for c in generic],
                total_count=5,
            ),
            SearchResponse(
                documents=[
                    RetrievedDocument(content="ADOBE-BRAND-GUIDE specific", score=0.9),
                ],
                total_count=1,
            ),
        ]
        llm = _llm(
            [
                _turn(_search("s1", "design advice")),
                _turn(_search("s2", "Adobe brand guide")),
                _turn(_evaluate()),
                _answer("done"),
            ],
            grades=["yes"],
        )
        result = _run(ToolLoopAgent(llm, retrieval).run("Adobe"))

        grading = llm.complete.call_args.kwargs["messages"][0]["content"]
        assert "ADOBE-BRAND-GUIDE specific" in grading
        assert grading.index("ADOBE-BRAND-GUIDE") < grading.index("GENERIC-ADVICE")
        # retrieval details still count every search
        assert result.explainability.retrieval_details.documents_found == 6

    def test_repeated_documents_graded_once(self):
        llm = _llm(
            [_turn(_search("s1")), _turn(_search("s2")), _turn(_evaluate()), _answer("x")],
            grades=["yes"],
        )
        _run(ToolLoopAgent(llm, _retrieval("Adobe Clean typeface.")).run("Adobe"))

        grading = llm.complete.call_args.kwargs["messages"][0]["content"]
        assert grading.count("Adobe Clean typeface.") == 1

    def test_step_details_carry_call_and_round(self):
        llm = _llm(
            [_turn(_search()), _turn(_evaluate()), _answer("done")],
            grades=["no"],
        )
        result = _run(ToolLoopAgent(llm, _retrieval("a", "b")).run("Adobe"))

        search_step, evaluate_step, generate_step = result.explainability.execution_steps
        assert search_step.details["round"] == 1
        assert search_step.details["arguments"] == {"query": "Adobe brand guidelines"}
        assert search_step.details["documents_found"] == 2
        assert evaluate_step.details["round"] == 2
        assert evaluate_step.details["verdict"] is False
        assert generate_step.details["capability_calls"] == 2
        assert generate_step.details["stopped"] == "answered"


# ---------------------------------------------------------------------------
# Test: Instrumented audit trail
# ---------------------------------------------------------------------------


class TestAuditTrail:
    """Recorded steps follow the real capability calls, in order."""

    def test_repeated_searches_each_recorded(self):
        llm = _llm(
            [
                _turn(_search("s1", "Adobe logo")),
                _turn(_search("s2", "Adobe colour palette")),
                _turn(_evaluate()),
                _answer("done"),
            ],
            grades=["yes"],
        )
        result = _run(ToolLoopAgent(llm, _retrieval("doc")).run("Adobe"))

        assert _steps(result) == [
            "tool_search_documents",
            "tool_search_documents",
            "tool_evaluate_documents",
            "generate",
        ]
        details = result.explainability.retrieval_details
        assert details.search_query == "Adobe logo"
        # documents accumulate across searches
        assert details.documents_found == 2

    def test_last_verdict_wins(self):
        llm = _llm(
            [_turn(_search()), _turn(_evaluate("e1")), _turn(_evaluate("e2")), _answer("x")],
            grades=["no", "yes"],
        )
        result = _run(ToolLoopAgent(llm, _retrieval("doc")).run("Adobe"))
        assert result.explainability.decision_points.retrieval_accepted is True

    def test_search_without_evaluate_leaves_grade_unknown(self):
        llm = _llm([_turn(_search()), _answer("done")])
        result = _run(ToolLoopAgent(llm, _retrieval("doc")).run("Adobe"))

        points = result.explainability.decision_points
        assert points.needs_retrieval is True
        assert points.retrieval_accepted is None


# ---------------------------------------------------------------------------
# Test: Capability failures stay inside the loop
# ---------------------------------------------------------------------------


class TestCapabilityFailures:
    """Capability errors become text for the model, not exceptions."""

    def test_evaluate_before_search_makes_no_model_call(self):
        llm = _llm([_turn(_evaluate()), _answer("done")])
        result = _run(ToolLoopAgent(llm, _retrieval()).run("Adobe"))

        llm.complete.assert_not_awaited()
        transcript = llm.complete_with_tools.call_args_list[1].args[0]
        assert transcript[-1]["content"] == NOTHING_TO_EVALUATE
        assert result.explainability.decision_points.needs_retrieval is False

    def test_empty_search_then_evaluate(self):
        llm = _llm([_turn(_search()), _turn(_evaluate()), _answer("done")])
        result = _run(ToolLoopAgent(llm, _retrieval()).run("Adobe"))

        # user, assistant, tool(search), assistant, tool(evaluate)
        transcript = llm.complete_with_tools.call_args_list[2].args[0]
        assert transcript[2]["content"] == "Found 0 relevant documents."
        assert transcript[4]["content"] == NOTHING_TO_EVALUATE
        assert result.explainability.retrieval_details.documents_found == 0
        assert result.explainability.decision_points.retrieval_accepted is None

    def test_search_failure_reported_to_model(self):
        llm = _llm([_turn(_search()), _answer("done")])
        retrieval = AsyncMock()
        retrieval.search.side_effect = RetrievalServiceError("index offline")
        result = _run(ToolLoopAgent(llm, retrieval).run("Adobe"))

        transcript = llm.complete_with_tools.call_args_list[1].args[0]
        assert transcript[-1]["content"].startswith("Error searching documents:")
        assert result.explainability.execution_steps[0].details["error"]
        assert result.answer == "done"

    def test_evaluate_failure_reported_to_model(self):
        llm = _llm([_turn(_search()), _turn(_evaluate()), _answer("done")])
        llm.complete.side_effect = CompletionServiceError("grader down")
        result = _run(ToolLoopAgent(llm, _retrieval("doc")).run("Adobe"))

        transcript = llm.complete_with_tools.call_args_list[2].args[0]
        assert transcript[-1]["content"].startswith("Error evaluating documents:")
        assert result.explainability.decision_points.retrieval_accepted is None

    def test_unknown_capability(self):
        bogus = ToolCall(id="x1", name="delete_index", arguments={})
        llm = _llm([_turn(bogus), _answer("done")])
        result = _run(ToolLoopAgent(llm, _retrieval()).run("Adobe"))

        transcript = llm.complete_with_tools.call_args_list[1].args[0]
        assert transcript[-1]["content"] == "Unknown capability: delete_index"
        assert _steps(result) == ["tool_delete_index", "generate"]

    def test_loop_completion_failure_propagates(self):
        llm = AsyncMock()
        llm.complete_with_tools.side_effect = CompletionServiceError("rate limited")
        with pytest.raises(CompletionServiceError):
            _run(ToolLoopAgent(llm, _retrieval()).run("Adobe"))


# ---------------------------------------------------------------------------
# Test: Round ceiling and validation
# ---------------------------------------------------------------------------


class TestLimits:
    """Round ceiling, query validation and argument parsing."""

    def test_round_ceiling_returns_limit_answer(self):
        llm = AsyncMock()
        llm.complete_with_tools.return_value = _turn(_search())
        result = _run(ToolLoopAgent(llm, _retrieval(), max_rounds=3).run("Adobe"))

        assert result.answer == TOOL_LIMIT_ANSWER
        assert llm.complete_with_tools.await_count == 3
        assert _steps(result).count("tool_search_documents") == 3
        assert result.explainability.execution_steps[-1].details["stopped"] == "round_limit"

    def test_zero_round_ceiling_is_not_replaced_by_default(self):
        llm = AsyncMock()
        result = _run(ToolLoopAgent(llm, _retrieval(), max_rounds=0).run("Adobe"))

        assert result.answer == TOOL_LIMIT_ANSWER
        llm.complete_with_tools.assert_not_awaited()

    def test_blank_query_rejected(self):
        llm = _llm([])
        with pytest.raises(InvalidQueryError):
            _run(ToolLoopAgent(llm, _retrieval()).run("   "))
        llm.complete_with_tools.assert_not_awaited()

    def test_argument_text(self):
        assert _argument_text({"query": "  Adobe  "}) == "Adobe"
        assert _argument_text({"input": "raw text"}) == "raw text"
        assert _argument_text({"q": "other"}) == '{"q": "other"}'
        assert _argument_text({}) == ""

    def test_capability_schemas_require_query(self):
        for capability in CAPABILITIES:
            assert capability.parameters["required"] == ["query"]

    def test_rejected_verdict_text(self):
        llm = _llm([_turn(_search()), _turn(_evaluate()), _answer("done")], grades=["no"])
        _run(ToolLoopAgent(llm, _retrieval("doc")).run("Adobe"))
        transcript = llm.complete_with_tools.call_args_list[2].args[0]
        assert transcript[-1]["content"] == REJECTED_VERDICT
