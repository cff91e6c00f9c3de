"""
Content-addressed cache of completed analyses.

Identical uploads with identical application context reuse the stored
analysis instead of paying for two more LLM calls.
"""

from __future__ import annotations

import copy
import hashlib
import json
from datetime import timedelta
from typing import Any

from backend.app.core.config import get_settings
from backend.app.core.db.documents import DocumentCollection, get_document_store
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics
from backend.app.utils.dates import parse_datetime, utc_now

CACHE_COLLECTION = "analysis_cache"


def generate_content_hash(
    content: str,
    app_id: str = "",
    component_name: str = "",
    environment: str = "",
    version: str = "",
) -> str:
    context = json.dumps(
        {
            "appId": app_id or "",
            "componentName": component_name or "",
            "environment": environment or "",
            "version": version or "",
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(f"{content}::{context}".encode("utf-8")).hexdigest()


class AnalysisCache:
    def __init__(self, collection: DocumentCollection, ttl_hours: int = 24):
        self.collection = collection
        self.ttl_hours = ttl_hours

    def _is_expired(self, entry: dict[str, Any]) -> bool:
        expires_at = parse_datetime(entry.get("expiresAt"))
        return expires_at is None or expires_at <= utc_now()

    def get(self, content_hash: str) -> dict[str, Any] | None:
        entry = self.collection.find_one({"contentHash": content_hash})
        if entry is None:
            metrics.inc("analysis_cache_misses_total")
            return None
        if self._is_expired(entry):
            self.collection.delete_one({"contentHash": content_hash})
            metrics.inc("analysis_cache_misses_total")
            log_event("analysis_cache_expired", content_hash=content_hash[:16])
            return None
        metrics.inc("analysis_cache_hits_total")
        return copy.deepcopy(entry.get("analysis") or None)

    def put(self, content_hash: str, analysis: dict[str, Any]) -> dict[str, Any]:
        now = utc_now()
        payload = {k: v for k, v in analysis.items() if k != "_id"}
        return self.collection.update_one(
            {"contentHash": content_hash},
            {
                "contentHash": content_hash,
                "analysis": payload,
                "analysisId": payload.get("id"),
                "createdAt": now.isoformat(),
                "expiresAt": (now + timedelta(hours=self.ttl_hours)).isoformat(),
            },
            upsert=True,
        )

    def clear_expired(self) -> int:
        removed = self.collection.delete_many({"expiresAt": {"$lte": utc_now().isoformat()}})
        if removed:
            log_event("analysis_cache_cleared", scope="expired", removed=removed)
        return removed

    def clear_all(self) -> int:
        removed = self.collection.delete_many({})
        log_event("analysis_cache_cleared", scope="all", removed=removed)
        return removed

    def stats(self) -> dict[str, Any]:
        entries = self.collection.find({}, sort=[("createdAt", -1)], exclude=["analysis"])
        expired = sum(1 for e in entries if self._is_expired(e))
        return {
            "totalCached": len(entries),
            "expiredCount": expired,
            "activeCount": len(entries) - expired,
            "entries": [
                {
                    "contentHash": f"{str(e.get('contentHash') or '')[:16]}...",
                    "analysisId": e.get("analysisId"),
                    "createdAt": e.get("createdAt"),
                    "expiresAt": e.get("expiresAt"),
                }
                for e in entries
            ],
        }


def get_analysis_cache() -> AnalysisCache | None:
    settings = get_settings()
    if not settings.enable_analysis_cache:
        return None
    return AnalysisCache(get_document_store().collection(CACHE_COLLECTION), settings.analysis_cache_ttl_hours)
