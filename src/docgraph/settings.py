from __future__ import annotations

from pydantic import Field

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "pydantic-settings is required. Install with: pip install pydantic-settings"
    ) from e


class DocGraphSettings(BaseSettings):
    """Unified configuration for docgraph.

    Environment variables are prefixed with DOCGRAPH_.
    """

    model_config = SettingsConfigDict(env_prefix="DOCGRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Store ---
    store_backend: str = Field(default="arango", description="arango|memory")
    arango_url: str = Field(default="http://localhost:8529")
    arango_username: str = Field(default="root")
    arango_password: str = Field(default="")
    arango_database: str = Field(default="docgraph")
    node_collection: str = Field(default="entity")
    document_collection: str = Field(default="document")
    excluded_collections: list[str] = Field(
        default_factory=list, description="Extra non-edge collections to hide from edge discovery"
    )
    edge_registry_ttl_seconds: float = Field(
        default=30.0, description="Re-scan the catalog after this long; 0 disables expiry"
    )

    # --- Graph view budgets ---
    view_max_nodes: int = Field(default=100, ge=0)
    view_max_edges: int = Field(default=100, ge=0)

    # --- Chunking ---
    chunk_max_tokens: int = Field(default=8000, ge=1)
    chars_per_token: int = Field(default=4, ge=1)
    chunk_overlap_chars: int = Field(default=0, ge=0)

    # --- Extraction service (OpenAI-compatible chat completions) ---
    llm_endpoint: str | None = Field(
        default=None,
        description="Full chat-completions URL. If unset, the rule-based extractor is used.",
    )
    llm_api_key: str | None = Field(default=None)
    llm_api_key_header: str = Field(
        default="Authorization", description="'Authorization' (Bearer) or 'api-key' (Azure)"
    )
    llm_model: str | None = Field(default=None)
    llm_timeout_seconds: float = Field(default=60.0)
    llm_max_attempts: int = Field(default=3, ge=1, description="Total requests per call, first try included")
    llm_backoff_initial: float = Field(default=1.0, ge=0)
    llm_backoff_max: float = Field(default=8.0, ge=0)

    # --- Resolution / ingestion policy ---
    resolver_fuzzy: bool = Field(default=True)
    resolver_fail_open: bool = Field(
        default=True, description="Create a new node on resolver errors instead of dropping it"
    )
    resolver_merge_properties: bool = Field(default=True)
    allow_self_loops: bool = Field(default=True)

    # --- Community detection ---
    community_min_size: int = Field(default=3, ge=1)
    community_merge_clusters: bool = Field(
        default=False, description="Union clusters joined by an edge (union-find)"
    )
    community_context_chars: int = Field(default=6000, ge=1)
    community_edge_limit: int | None = Field(default=None, description="None = unbounded batch")


settings = DocGraphSettings()
