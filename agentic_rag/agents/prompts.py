# =============================================================================
# Prompt Builders — Workflow Stages and Tool-Loop Capabilities
# =============================================================================
#
# Each builder returns the text of a single user message (or, for the
# tool loop, the system directive). Stage logic only depends on the
# function names, never on the wording.
#
# DESIGN DECISION: The grading question is shared.
# The workflow's Grade stage and the tool loop's evaluate capability ask
# the same yes/no question over the same excerpt format, so the two
# strategies judge relevance identically.
# =============================================================================

from __future__ import annotations

from agentic_rag.services.retrieval import RetrievedDocument

# Shown as the answer when the final completion call fails
FALLBACK_ANSWER = (
    "I apologize, but I encountered an error while generating the response."
)

# Shown as the answer when the tool loop hits its round ceiling
TOOL_LIMIT_ANSWER = (
    "I couldn't complete the request within the allowed number of tool calls."
)

# At most this many documents are shown to the grader
GRADE_MAX_DOCUMENTS = 5


def analysis_prompt(query: str) -> str:
    """Ask for a one-word RETRIEVE / GENERATE routing decision."""
    return (
        "Decide whether answering the user's query would benefit from "
        "searching an external document index.\n\n"
        f'Query: "{query}"\n\n'
        "Answer RETRIEVE when the query could use:\n"
        "- company- or brand-specific material (brand guidelines, style "
        "guides, internal documentation)\n"
        "- recent reports, studies, or current data\n"
        "- proprietary processes or specific technical documentation\n\n"
        "Queries naming a specific company should be answered RETRIEVE so "
        "that company material can be checked first.\n"
        "Answer GENERATE when general knowledge is enough.\n\n"
        "Reply with exactly one word: RETRIEVE or GENERATE"
    )


def grading_prompt(
    query: str,
    documents: list[RetrievedDocument],
    excerpt_chars: int = 500,
) -> str:
    """Ask whether the documents hold company/brand-specific information."""
    excerpts = "\n".join(
        f"Document {i}:\n{doc.content[:excerpt_chars]}...\nScore: {doc.score}\n"
        for i, doc in enumerate(documents[:GRADE_MAX_DOCUMENTS], 1)
    )
    return (
        "You are grading whether retrieved documents contain specific "
        "company or brand information that would improve the answer.\n\n"
        f'Query: "{query}"\n\n'
        f"Retrieved documents:\n{excerpts}\n"
        "Relevant means: brand guidelines, style guides, design standards, "
        "official documentation, internal processes, or other proprietary "
        "knowledge about the company the query mentions.\n"
        "Not relevant means: generic industry advice, general best "
        "practices, or material about a different company.\n\n"
        "Reply with only: yes or no"
    )


def answer_prompt(query: str, documents: list[RetrievedDocument]) -> str:
    """Answer from the full retrieved document contents."""
    context = "\n".join(
        f"Source {i}:\n{doc.content}\n" for i, doc in enumerate(documents, 1)
    )
    return (
        "Answer the question using the retrieved context below. If the "
        "context does not contain the answer, say that you don't know. Be "
        "comprehensive and detailed.\n\n"
        f"Question: {query}\n\n"
        f"Context:\n{context}\n"
        "Answer:"
    )


def general_knowledge_prompt(query: str, rejection_reason: str = "") -> str:
    """Answer without document context, noting why documents were not used."""
    note = ""
    if rejection_reason:
        note = (
            f"Note: external documents were not used ({rejection_reason}). "
            "Answer from general knowledge.\n\n"
        )
    return (
        "Answer the following question using your general knowledge. Be "
        "comprehensive and acknowledge any limitations.\n\n"
        f"Question: {query}\n\n"
        f"{note}"
        "Answer:"
    )


def search_digest(
    documents: list[RetrievedDocument],
    digest_chars: int = 1200,
) -> str:
    """Format search results as text for the tool loop to read back."""
    if not documents:
        return "Found 0 relevant documents."
    entries = "\n\n".join(
        f"Document {i} (Score: {doc.score:.2f}):\n{doc.content[:digest_chars]}..."
        for i, doc in enumerate(documents[:GRADE_MAX_DOCUMENTS], 1)
    )
    return f"Found {len(documents)} relevant documents:\n\n{entries}"


TOOL_LOOP_SYSTEM = (
    "You are a retrieval-augmented assistant with two tools.\n\n"
    "1. search_documents: REQUIRED first step whenever the query names a "
    "company, brand, or organisation, or asks for company-specific "
    "deliverables. Search before answering.\n"
    "2. evaluate_documents: REQUIRED after search_documents. It tells you "
    "whether the retrieved documents contain company-specific information "
    "or whether you should proceed with general knowledge.\n\n"
    "Then write the final answer. If the documents were accepted, use their "
    "specific details. If they were rejected, answer from general knowledge "
    "and say so. Do not call more tools once you have what you need."
)
