"""
Central configuration for the ArchLens runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    app_env: str
    app_name: str
    debug: bool
    base_dir: Path
    data_dir: Path
    cors_allow_origins: list[str]
    enable_mongo: bool
    mongo_uri: str
    mongo_db_name: str
    llm_provider: str
    llm_model: str
    llm_temperature: float
    llm_max_tokens: int
    llm_timeout_seconds: float
    embeddings_provider: str
    embeddings_model: str
    embeddings_base_url: str
    embeddings_api_key: str
    embeddings_dimensions: int
    vector_store_type: str
    vector_distance: str
    vector_store_path: Path
    qdrant_url: str
    qdrant_api_key: str
    qdrant_collection: str
    require_qdrant: bool
    enable_analysis_cache: bool
    analysis_cache_ttl_hours: int
    llm_cost_input_per_1k: float
    llm_cost_output_per_1k: float


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def get_settings() -> Settings:
    base_dir = Path(__file__).resolve().parents[3]
    raw_data_dir = os.getenv("DATA_DIR", "").strip()
    data_dir = Path(raw_data_dir) if raw_data_dir else base_dir / "data"

    raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
    if raw_origins.strip() == "*":
        cors_allow_origins = ["*"]
    else:
        cors_allow_origins = [x.strip() for x in raw_origins.split(",") if x.strip()]

    vector_store_type = os.getenv("VECTOR_STORE_TYPE", "qdrant").strip().lower() or "qdrant"
    if vector_store_type not in {"qdrant", "faiss"}:
        vector_store_type = "qdrant"

    return Settings(
        app_env=os.getenv("APP_ENV", "dev").strip().lower(),
        app_name=os.getenv("APP_NAME", "ArchLens"),
        debug=_env_bool("DEBUG", False),
        base_dir=base_dir,
        data_dir=data_dir,
        cors_allow_origins=cors_allow_origins,
        enable_mongo=_env_bool("ENABLE_MONGO", False),
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", "archlens").strip() or "archlens",
        llm_provider=os.getenv("LLM_PROVIDER", "").strip().lower(),
        llm_model=os.getenv("LLM_MODEL", "").strip(),
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.2),
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", 4000),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 120.0),
        embeddings_provider=os.getenv("EMBEDDINGS_PROVIDER", "local").strip().lower() or "local",
        embeddings_model=os.getenv("EMBEDDINGS_MODEL", "nomic-embed-text").strip(),
        embeddings_base_url=os.getenv("EMBEDDINGS_BASE_URL", "http://localhost:11434").strip().rstrip("/"),
        embeddings_api_key=os.getenv("EMBEDDINGS_API_KEY", "").strip(),
        embeddings_dimensions=_env_int("EMBEDDINGS_DIMENSIONS", 768),
        vector_store_type=vector_store_type,
        vector_distance=os.getenv("VECTOR_DISTANCE", "Cosine").strip() or "Cosine",
        vector_store_path=data_dir / "vectors.json",
        qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
        qdrant_api_key=os.getenv("QDRANT_API_KEY", "").strip(),
        qdrant_collection=os.getenv("QDRANT_COLLECTION", "archlens_blueprints").strip() or "archlens_blueprints",
        require_qdrant=_env_bool("REQUIRE_QDRANT", False),
        enable_analysis_cache=_env_bool("ENABLE_ANALYSIS_CACHE", True),
        analysis_cache_ttl_hours=_env_int("ANALYSIS_CACHE_TTL_HOURS", 24),
        llm_cost_input_per_1k=_env_float("LLM_COST_INPUT_PER_1K", 0.0),
        llm_cost_output_per_1k=_env_float("LLM_COST_OUTPUT_PER_1K", 0.0),
    )
