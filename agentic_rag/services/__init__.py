# =============================================================================
# Services Package — External Collaborators
# =============================================================================
# Injected into the strategies, never constructed by them:
#   - llm.py: Completion Service (Anthropic, OpenAI-compatible, Azure OpenAI)
#     with plain and tool-calling completions
#   - retrieval.py: Retrieval Service (Chroma, Azure AI Search)
# =============================================================================
