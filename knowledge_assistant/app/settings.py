from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "256"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "25"))
    semantic_top_k: int = int(os.getenv("RAG_SEMANTIC_TOP_K", "8"))
    keyword_top_k: int = int(os.getenv("RAG_KEYWORD_TOP_K", "8"))
    semantic_threshold: float = float(os.getenv("RAG_SEMANTIC_THRESHOLD", "0.2"))
    semantic_min_score: float = float(os.getenv("RAG_SEMANTIC_MIN_SCORE", "0.1"))
    keyword_min_score: float = float(os.getenv("RAG_KEYWORD_MIN_SCORE", "0.15"))
    keyword_weight: float = float(os.getenv("RAG_KEYWORD_WEIGHT", "0.8"))
    max_candidates: int = int(os.getenv("RAG_MAX_CANDIDATES", "10"))
    answer_candidates: int = int(os.getenv("RAG_ANSWER_CANDIDATES", "3"))
    embed_timeout: float = float(os.getenv("RAG_EMBED_TIMEOUT", "30"))
    corpus_timeout: float = float(os.getenv("RAG_CORPUS_TIMEOUT", "10"))
    fragment_delay: float = float(os.getenv("RAG_FRAGMENT_DELAY", "0.008"))
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "384"))
    embedding_model: str = os.getenv(
        "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
    )
    document_db_uri: str | None = os.getenv("RAG_DOCUMENT_DB_URI")
    followup_sessions: int = int(os.getenv("RAG_FOLLOWUP_SESSIONS", "128"))
    followup_history: int = int(os.getenv("RAG_FOLLOWUP_HISTORY", "30"))
    chat_history_limit: int = int(os.getenv("RAG_CHAT_HISTORY_LIMIT", "50"))
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = _env_bool("RAG_METRICS_ENABLED", "true")


settings = Settings()
