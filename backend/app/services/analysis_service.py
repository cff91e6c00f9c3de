"""
Persistence and reporting for architecture analyses.
"""

from __future__ import annotations

import base64
import binascii
import math
from typing import Any, Optional

from backend.app.analysis.json_recovery import coerce_number, coerce_score
from backend.app.core.db.documents import DocumentCollection, get_document_store, is_object_id
from backend.app.core.errors import NotFoundError
from backend.app.observability.logging import log_event
from backend.app.utils.dates import date_bound_iso, days_ago_iso, utc_iso_now

ANALYSES_COLLECTION = "analyses"
LIST_EXCLUDE = ["originalFile.data"]
MAX_PAGE_SIZE = 100
SCORE_FIELD_NAMES = ("resiliencyScore", "securityScore", "costEfficiencyScore", "complianceScore")
# fields a client may change through PUT /api/analyses/{id}
EDITABLE_FIELDS = frozenset(
    {
        "appId",
        "componentName",
        "description",
        "environment",
        "version",
        "status",
        "tags",
        "notes",
        "summary",
        "architectureDescription",
        "metadata",
        "components",
        "connections",
        "risks",
        "complianceGaps",
        "costIssues",
        "recommendations",
        "estimatedSavingsUSD",
        *SCORE_FIELD_NAMES,
    }
)


def id_query(analysis_id: str) -> dict[str, Any]:
    if is_object_id(analysis_id):
        return {"_id": analysis_id}
    return {"id": analysis_id}


def build_pagination(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "totalCount": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def clamp_page(page: Any, limit: Any, default_limit: int = 20) -> tuple[int, int]:
    try:
        page_num = int(page)
    except (TypeError, ValueError):
        page_num = 1
    try:
        limit_num = int(limit)
    except (TypeError, ValueError):
        limit_num = default_limit
    return max(1, page_num), min(MAX_PAGE_SIZE, max(1, limit_num))


def decode_file(original: dict[str, Any] | None) -> tuple[bytes, str, str]:
    if not original or not original.get("data"):
        raise NotFoundError("Original file not available")
    try:
        content = base64.b64decode(original["data"])
    except (binascii.Error, ValueError) as exc:
        raise NotFoundError("Original file data is corrupt") from exc
    mime_type = original.get("mimeType") or original.get("type") or "application/octet-stream"
    return content, mime_type, original.get("name") or "file"


def _average(values: list[float]) -> int:
    if not values:
        return 0
    return int(round(sum(values) / len(values)))


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


class AnalysisService:
    def __init__(self, collection: DocumentCollection):
        self.collection = collection

    def save(self, analysis: dict[str, Any]) -> dict[str, Any]:
        saved = self.collection.insert_one(analysis)
        log_event("analysis_saved", analysis_id=saved.get("id"), object_id=saved["_id"])
        return saved

    def get(self, analysis_id: str) -> dict[str, Any] | None:
        if not analysis_id:
            return None
        found = self.collection.find_one(id_query(analysis_id))
        if found is None and is_object_id(analysis_id):
            found = self.collection.find_one({"id": analysis_id})
        return found

    def require(self, analysis_id: str) -> dict[str, Any]:
        analysis = self.get(analysis_id)
        if analysis is None:
            raise NotFoundError("Analysis not found")
        return analysis

    def list(
        self,
        page: int = 1,
        limit: int = 20,
        app_id: str | None = None,
        environment: str | None = None,
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        page, limit = clamp_page(page, limit)
        query: dict[str, Any] = {}
        if app_id:
            query["appId"] = app_id
        if environment:
            query["environment"] = environment
        if status:
            query["status"] = status
        bounds: dict[str, str] = {}
        lower = date_bound_iso(date_from)
        upper = date_bound_iso(date_to, end_of_day=True)
        if lower:
            bounds["$gte"] = lower
        if upper:
            bounds["$lte"] = upper
        if bounds:
            query["timestamp"] = bounds

        total = self.collection.count(query)
        rows = self.collection.find(
            query,
            sort=[("timestamp", -1)],
            skip=(page - 1) * limit,
            limit=limit,
            exclude=LIST_EXCLUDE,
        )
        return {"analyses": rows, "pagination": build_pagination(page, limit, total)}

    def update(self, analysis_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        existing = self.require(analysis_id)
        updates = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        ignored = sorted(set(fields) - EDITABLE_FIELDS)
        if ignored:
            log_event("analysis_update_fields_ignored", analysis_id=existing.get("id"), fields=ignored)
        for name in SCORE_FIELD_NAMES:
            if name in updates:
                updates[name] = coerce_score(updates[name])
        if "estimatedSavingsUSD" in updates:
            updates["estimatedSavingsUSD"] = coerce_number(updates["estimatedSavingsUSD"])
        updates["updatedAt"] = utc_iso_now()
        updated = self.collection.update_one({"_id": existing["_id"]}, updates)
        if updated is None:
            raise NotFoundError("Analysis not found")
        return updated

    def delete(self, analysis_id: str) -> bool:
        existing = self.get(analysis_id)
        if existing is None:
            return False
        deleted = self.collection.delete_one({"_id": existing["_id"]})
        if deleted:
            log_event("analysis_deleted", analysis_id=existing.get("id"), object_id=existing["_id"])
        return deleted

    def get_file(self, analysis_id: str) -> tuple[bytes, str, str]:
        analysis = self.require(analysis_id)
        return decode_file(analysis.get("originalFile"))

    def dashboard_stats(self) -> dict[str, Any]:
        completed = self.collection.find({"status": "completed"}, exclude=LIST_EXCLUDE)
        recent = self.collection.count({"timestamp": {"$gte": days_ago_iso(30)}})

        scores: dict[str, list[float]] = {
            "securityScore": [],
            "resiliencyScore": [],
            "costEfficiencyScore": [],
            "complianceScore": [],
        }
        environments: dict[str, int] = {}
        severities: dict[str, int] = {}
        for analysis in completed:
            for key, bucket in scores.items():
                value = _number(analysis.get(key))
                if value is not None:
                    bucket.append(value)
            env = analysis.get("environment") or "unknown"
            environments[env] = environments.get(env, 0) + 1
            for risk in analysis.get("risks") or []:
                if isinstance(risk, dict):
                    severity = str(risk.get("severity") or "unknown")
                    severities[severity] = severities.get(severity, 0) + 1

        return {
            "totalAnalyses": len(completed),
            "recentAnalyses": recent,
            "averageScores": {
                "avgSecurity": _average(scores["securityScore"]),
                "avgResilience": _average(scores["resiliencyScore"]),
                "avgCostEfficiency": _average(scores["costEfficiencyScore"]),
                "avgCompliance": _average(scores["complianceScore"]),
            },
            "environmentDistribution": [
                {"_id": k, "count": v} for k, v in sorted(environments.items(), key=lambda x: (-x[1], x[0]))
            ],
            "riskDistribution": [
                {"_id": k, "count": v} for k, v in sorted(severities.items(), key=lambda x: (-x[1], x[0]))
            ],
        }


def get_analysis_service() -> AnalysisService:
    return AnalysisService(get_document_store().collection(ANALYSES_COLLECTION))
