"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import os

from coderank import constants


def resolve_setting(explicit: object | None, env_var: str, default: str) -> str:
    """Resolve a setting from an explicit value, an env var, or a default."""
    if explicit is not None:
        return str(explicit)
    return os.environ.get(env_var, default)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class EngineSettings:
    """Configuration for the search engine, loaded from environment variables.

    Prefix: CODERANK_ for engine-specific settings.
    Falls back to shared env vars (LITELLM_URL, LITELLM_MASTER_KEY) for the
    LLM proxy. Keyword arguments override the environment.
    """

    litellm_url: str
    litellm_api_key: str
    embedding_model: str
    llm_model: str
    embedding_batch_size: int
    embedding_concurrent_batches: int
    hybrid_top_k: int
    stage2_top_k: int
    stage3_top_k: int
    scoring_concurrency: int
    compression_enabled: bool
    compression_threshold: int
    max_compressible_size: int
    compression_concurrency: int
    chunking_workers: int
    log_level: str
    log_service: str
    log_format: str
    log_stream: str

    def __init__(self, **overrides: object) -> None:
        unknown = set(overrides) - set(type(self).__annotations__)
        if unknown:
            raise TypeError(f"unknown settings: {sorted(unknown)}")

        def get(name: str, env_var: str, default: object) -> str:
            return resolve_setting(overrides.get(name), env_var, str(default))

        self.litellm_url = get("litellm_url", "LITELLM_URL", "http://localhost:4000")
        self.litellm_api_key = get("litellm_api_key", "LITELLM_MASTER_KEY", "")
        self.embedding_model = get("embedding_model", "CODERANK_EMBEDDING_MODEL", constants.DEFAULT_EMBEDDING_MODEL)
        self.llm_model = get("llm_model", "CODERANK_LLM_MODEL", constants.DEFAULT_LLM_MODEL)

        self.embedding_batch_size = int(
            get("embedding_batch_size", "CODERANK_EMBEDDING_BATCH_SIZE", constants.EMBEDDING_BATCH_SIZE)
        )
        self.embedding_concurrent_batches = int(
            get(
                "embedding_concurrent_batches",
                "CODERANK_EMBEDDING_CONCURRENT_BATCHES",
                constants.EMBEDDING_CONCURRENT_BATCHES,
            )
        )

        self.hybrid_top_k = int(get("hybrid_top_k", "CODERANK_HYBRID_TOP_K", constants.HYBRID_TOP_K))
        self.stage2_top_k = int(get("stage2_top_k", "CODERANK_STAGE2_TOP_K", constants.EMBEDDING_RERANK_TOP_K))
        self.stage3_top_k = int(get("stage3_top_k", "CODERANK_STAGE3_TOP_K", constants.RELEVANCE_RERANK_TOP_K))
        self.scoring_concurrency = int(
            get("scoring_concurrency", "CODERANK_SCORING_CONCURRENCY", constants.SCORING_CONCURRENCY)
        )

        self.compression_enabled = _as_bool(get("compression_enabled", "CODERANK_COMPRESSION_ENABLED", "true"))
        self.compression_threshold = int(
            get("compression_threshold", "CODERANK_COMPRESSION_THRESHOLD", constants.COMPRESSION_THRESHOLD)
        )
        self.max_compressible_size = int(
            get("max_compressible_size", "CODERANK_MAX_COMPRESSIBLE_SIZE", constants.MAX_COMPRESSIBLE_SIZE)
        )
        self.compression_concurrency = int(
            get("compression_concurrency", "CODERANK_COMPRESSION_CONCURRENCY", constants.COMPRESSION_CONCURRENCY)
        )

        self.chunking_workers = int(get("chunking_workers", "CODERANK_CHUNKING_WORKERS", constants.CHUNKING_WORKERS))
        self.log_level = get("log_level", "CODERANK_LOG_LEVEL", "info")
        self.log_service = get("log_service", "CODERANK_LOG_SERVICE", "coderank")
        self.log_format = get("log_format", "CODERANK_LOG_FORMAT", "json")
        self.log_stream = get("log_stream", "CODERANK_LOG_STREAM", "stdout")

        if not self.hybrid_top_k >= self.stage2_top_k >= self.stage3_top_k >= 1:
            raise ValueError(
                "funnel sizes must narrow: "
                f"hybrid={self.hybrid_top_k} stage2={self.stage2_top_k} stage3={self.stage3_top_k}"
            )
