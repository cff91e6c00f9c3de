"""
Relational accounting layer.

Stores:
- llm_usage_logs (one row per LLM call, successful or not)

Analyses, blueprints and checklist items live in the document store.
"""

from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Boolean, DateTime, Float, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from backend.app.core.config import get_settings


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _database_url() -> str:
    raw = os.getenv("DATABASE_URL", "").strip()
    if raw:
        return raw
    return f"sqlite:///{get_settings().data_dir / 'archlens.db'}"


class Base(DeclarativeBase):
    pass


DB_URL = _database_url()
if DB_URL.startswith("sqlite:///"):
    sqlite_path = DB_URL.replace("sqlite:///", "", 1)
    if sqlite_path:
        Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, future=True, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class DBLLMUsageLog(Base):
    __tablename__ = "llm_usage_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider: Mapped[str] = mapped_column(String(40), index=True)
    model: Mapped[str] = mapped_column(String(120))
    purpose: Mapped[str] = mapped_column(String(60), index=True, default="general")
    tokens_input: Mapped[int] = mapped_column(Integer, default=0)
    tokens_output: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    latency_ms: Mapped[int] = mapped_column(Integer, default=0)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)


def init_relational_db():
    Base.metadata.create_all(bind=engine)


@contextmanager
def get_relational_session():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
