# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: Pydantic V2's `BaseSettings` for configuration.
# Values load in this priority order (highest first):
#   1. Environment variables (e.g., `LLM_PROVIDER=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# The workflow core never reads settings directly for its collaborators;
# services are injected. Settings only supply defaults (top_k, limits)
# and drive the service factories.
#
# USAGE:
#   from agentic_rag.config import settings
#   print(settings.llm_provider)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are suitable for local development with an in-process
    Chroma collection. Override via environment variables or a .env file.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Agentic RAG Decision Service"
    app_version: str = "2.0.0"
    debug: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Completion Service: Multi-Provider
    # -------------------------------------------------------------------------
    # Providers:
    #   - "anthropic": Claude via native Anthropic SDK
    #   - "openai_compatible": any OpenAI-compatible API (OpenAI, DeepSeek, ...)
    #   - "azure_openai": Azure OpenAI deployment
    # -------------------------------------------------------------------------
    llm_provider: str = "azure_openai"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "gpt-4.1-mini"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 6000

    anthropic_api_key: str = ""
    openai_api_key: str = ""

    azure_openai_endpoint: str = ""
    azure_openai_api_key: str = ""
    azure_openai_api_version: str = "2024-06-01"
    azure_openai_deployment: str = "gpt-4.1-mini"

    # Max tokens for the final answer in the staged workflow
    answer_max_tokens: int = 2000

    # -------------------------------------------------------------------------
    # Retrieval Service: Pluggable Backend
    # -------------------------------------------------------------------------
    #   - "chroma": ChromaDB (in-process, persistent, or client/server)
    #   - "azure_search": Azure AI Search over REST
    # -------------------------------------------------------------------------
    retrieval_backend: str = "chroma"

    chroma_url: str | None = None          # Client/server mode when set
    chroma_persist_dir: str | None = None  # Persistent in-process mode when set
    chroma_collection: str = "knowledge_base"

    azure_search_endpoint: str = ""
    azure_search_api_key: str = ""
    azure_search_index_name: str = "knowledge-base"
    azure_search_semantic_config: str = "default"
    azure_search_api_version: str = "2023-11-01"
    azure_search_timeout_seconds: float = 30.0

    # top_k: documents requested per search (reference: 5)
    # grade_excerpt_chars: per-document excerpt shown to the grader
    # search_digest_chars: per-document excerpt returned to the tool loop
    retrieval_top_k: int = 5
    grade_excerpt_chars: int = 500
    search_digest_chars: int = 1200

    # -------------------------------------------------------------------------
    # Workflow Limits
    # -------------------------------------------------------------------------
    # workflow_recursion_limit: max stage transitions per staged run.
    # max_retries: recorded on each run; no stage loops back on it yet.
    # tool_loop_max_rounds: completion rounds before the tool loop gives up.
    # -------------------------------------------------------------------------
    workflow_recursion_limit: int = 10
    max_retries: int = 0
    tool_loop_max_rounds: int = 12

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------
    # The workflow itself never times out; the HTTP layer wraps each run.
    request_timeout_seconds: float = 120.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Create and cache the process-wide Settings instance."""
    return Settings()


settings = get_settings()
