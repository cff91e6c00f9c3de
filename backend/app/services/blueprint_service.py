"""
Blueprint library: reusable architecture templates with ratings, downloads and
vector embeddings for recommendations.
"""

from __future__ import annotations

import base64
import json
import re
from enum import Enum
from typing import Any, Optional

from backend.app.core.db.documents import DocumentCollection, get_document_store, unique_time_id
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics
from backend.app.services.analysis_service import (
    AnalysisService,
    build_pagination,
    clamp_page,
    decode_file,
    get_analysis_service,
)
from backend.app.services.embedding_service import (
    EmbeddingService,
    analysis_content,
    blueprint_vector_id,
    get_embedding_service,
)
from backend.app.utils.dates import epoch_ms, utc_iso_now

BLUEPRINTS_COLLECTION = "blueprints"
BLUEPRINT_ANALYSES_COLLECTION = "blueprint_analyses"
LIST_EXCLUDE = ["originalFile.data"]
SORT_FIELDS = ("name", "createdAt", "downloadCount", "rating")
UPDATABLE_FIELDS = (
    "name",
    "description",
    "creatorDescription",
    "type",
    "category",
    "tags",
    "isPublic",
    "complexity",
    "cloudProviders",
    "metadata",
    "version",
)
CONTENT_FIELDS = {"name", "description", "type", "category", "tags", "complexity", "cloudProviders", "metadata"}


class BlueprintType(str, Enum):
    ARCHITECTURE = "architecture"
    IAC = "iac"
    TEMPLATE = "template"


class BlueprintCategory(str, Enum):
    E_COMMERCE = "E-commerce"
    DEVOPS = "DevOps"
    WEB_DEVELOPMENT = "Web Development"
    DATA_ANALYTICS = "Data Analytics"
    IOT = "IoT"
    MOBILE = "Mobile"
    AI_ML = "AI/ML"
    SECURITY = "Security"
    OTHER = "Other"


class BlueprintComplexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _values(enum_cls) -> set[str]:
    return {e.value for e in enum_cls}


def parse_list(value: Any) -> list[str]:
    """Accepts a list, a JSON array string or a comma separated string."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(v).strip() for v in parsed if str(v).strip()]
    return [part.strip() for part in text.split(",") if part.strip()]


def complexity_for(component_count: int) -> str:
    if component_count > 15:
        return BlueprintComplexity.HIGH.value
    if component_count > 8:
        return BlueprintComplexity.MEDIUM.value
    return BlueprintComplexity.LOW.value


def blueprint_type_for(file_type: Optional[str]) -> str:
    if file_type == "iac":
        return BlueprintType.IAC.value
    if file_type == "text":
        return BlueprintType.TEMPLATE.value
    return BlueprintType.ARCHITECTURE.value


def cloud_providers_for(components: list[Any]) -> list[str]:
    providers: list[str] = []
    for comp in components or []:
        if not isinstance(comp, dict):
            continue
        provider = comp.get("cloudProvider")
        if provider and provider != "on-premises" and provider not in providers:
            providers.append(provider)
    return providers


def _validate_enums(data: dict[str, Any]):
    if "type" in data and data["type"] not in _values(BlueprintType):
        raise ValidationError(f"type must be one of: {', '.join(sorted(_values(BlueprintType)))}")
    if "category" in data and data["category"] not in _values(BlueprintCategory):
        raise ValidationError(f"category must be one of: {', '.join(sorted(_values(BlueprintCategory)))}")
    if data.get("complexity") and data["complexity"] not in _values(BlueprintComplexity):
        raise ValidationError(f"complexity must be one of: {', '.join(sorted(_values(BlueprintComplexity)))}")


def _distribution(values: list[str]) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return [{"_id": k, "count": v} for k, v in sorted(counts.items(), key=lambda x: (-x[1], x[0]))]


def _summary(bp: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": bp.get("id"),
        "name": bp.get("name"),
        "downloadCount": bp.get("downloadCount", 0),
        "rating": bp.get("rating", 0),
    }


def map_blueprint_analysis(analysis: dict[str, Any], blueprint_id: str, cloud_providers: list[str]) -> dict[str, Any]:
    components = analysis.get("components") or []
    connections = analysis.get("connections") or []
    now = utc_iso_now()
    return {
        "blueprintId": blueprint_id,
        "analysisId": f"blueprint_analysis_{epoch_ms()}",
        "components": components,
        "componentRelationships": [
            {
                "source": c.get("source") or c.get("sourceId"),
                "target": c.get("target") or c.get("targetId"),
                "relationship": c.get("relationship") or c.get("type") or "communicates_with",
                "strength": c.get("strength") or 0.8,
                "dataFlow": c.get("dataFlow") or c.get("description") or "",
                "protocol": c.get("protocol") or "HTTP",
            }
            for c in connections
            if isinstance(c, dict)
        ],
        "architecturePatterns": [],
        "technologyStack": cloud_providers,
        "componentComplexity": {
            "totalComponents": len(components),
            "criticalComponents": sum(
                1 for c in components if isinstance(c, dict) and c.get("criticality") == "high"
            ),
            "highCouplingComponents": 0,
            "scalabilityBottlenecks": [],
            "integrationPoints": len(connections),
        },
        "scores": {
            "security": analysis.get("securityScore") or 0,
            "resiliency": analysis.get("resiliencyScore") or 0,
            "costEfficiency": analysis.get("costEfficiencyScore") or 0,
            "compliance": analysis.get("complianceScore") or 0,
            "scalability": 75,
            "maintainability": 80,
        },
        "risks": [
            {
                "id": r.get("id"),
                "title": r.get("title"),
                "description": r.get("description") or "",
                "severity": r.get("severity") or r.get("level") or "medium",
                "category": r.get("category") or "security",
                "impact": r.get("impact") or "medium",
                "recommendation": r.get("recommendation") or "",
                "components": r.get("affectedComponents") or r.get("components") or [],
            }
            for r in analysis.get("risks") or []
            if isinstance(r, dict)
        ],
        "complianceGaps": [
            {
                "id": g.get("id"),
                "framework": g.get("framework") or "Unknown",
                "requirement": g.get("requirement") or "",
                "description": g.get("description") or "",
                "severity": g.get("severity") or "medium",
                "remediation": g.get("remediation") or "",
                "components": g.get("affectedComponents") or g.get("components") or [],
            }
            for g in analysis.get("complianceGaps") or []
            if isinstance(g, dict)
        ],
        "costIssues": [
            {
                "id": i.get("id"),
                "title": i.get("title") or "",
                "description": i.get("description") or "",
                "category": i.get("category") or "cost",
                "estimatedSavingsUSD": i.get("estimatedSavingsUSD") or i.get("estimatedSavings") or 0,
                "recommendation": i.get("recommendation") or "",
                "components": i.get("affectedComponents") or i.get("components") or [],
                "severity": i.get("severity") or "medium",
            }
            for i in analysis.get("costIssues") or []
            if isinstance(i, dict)
        ],
        "recommendations": [
            {
                "component": r.get("component") or "General",
                "issue": r.get("issue") or "",
                "recommendation": r.get("fix") or r.get("recommendation") or "",
                "priority": r.get("priority") or "medium",
                "impact": r.get("impact") or "medium",
                "effort": r.get("effort") or "medium",
                "confidence": r.get("confidence") or 0.8,
                "category": r.get("category") or "security",
            }
            for r in analysis.get("recommendations") or []
            if isinstance(r, dict)
        ],
        "insights": [],
        "bestPractices": [],
        "industryStandards": [],
        "createdAt": now,
        "updatedAt": now,
    }


class BlueprintService:
    def __init__(
        self,
        collection: DocumentCollection,
        analyses: DocumentCollection,
        embeddings: EmbeddingService | None = None,
        analysis_service: AnalysisService | None = None,
    ):
        self.collection = collection
        self.analyses = analyses
        self.embeddings = embeddings
        self.analysis_service = analysis_service

    # -- embeddings -------------------------------------------------------

    def _embed(self, blueprint: dict[str, Any]) -> dict[str, Any]:
        if self.embeddings is None or not self.embeddings.is_available():
            return blueprint
        try:
            vector_id = self.embeddings.store_blueprint_embedding(blueprint)
        except Exception as exc:
            log_event("embedding_store_failed", blueprint_id=blueprint.get("id"), error=str(exc))
            return blueprint
        return self.collection.update_one(
            {"id": blueprint["id"]},
            {"hasEmbedding": True, "embeddingId": vector_id, "embeddingGeneratedAt": utc_iso_now()},
        ) or blueprint

    def _drop_vectors(self, blueprint_id: str):
        if self.embeddings is None or not self.embeddings.is_available():
            return
        try:
            self.embeddings.delete_blueprint_vectors(blueprint_id)
        except Exception as exc:
            log_event("embedding_delete_failed", blueprint_id=blueprint_id, error=str(exc))

    # -- CRUD -------------------------------------------------------------

    def create(
        self,
        data: dict[str, Any],
        file_name: Optional[str] = None,
        content_type: Optional[str] = None,
        content: Optional[bytes] = None,
    ) -> dict[str, Any]:
        missing = [f for f in ("name", "description", "type", "category") if not str(data.get(f) or "").strip()]
        if content is None or not file_name:
            missing.append("file")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        _validate_enums(data)

        now = utc_iso_now()
        try:
            estimated_cost = int(data.get("estimatedCost") or 0)
        except (TypeError, ValueError):
            estimated_cost = 0
        mime_type = content_type or "application/octet-stream"
        blueprint = {
            "id": unique_time_id(self.collection),
            "name": str(data["name"]).strip(),
            "description": str(data["description"]).strip(),
            "creatorDescription": data.get("creatorDescription") or None,
            "type": data["type"],
            "category": data["category"],
            "tags": parse_list(data.get("tags")),
            "fileName": file_name,
            "fileSize": len(content),
            "fileType": mime_type,
            "originalFile": {
                "name": file_name,
                "size": len(content),
                "type": mime_type,
                "data": base64.b64encode(content).decode("ascii"),
                "mimeType": mime_type,
            },
            "createdAt": now,
            "updatedAt": now,
            "createdBy": data.get("createdBy") or "Current User",
            "isPublic": bool(data.get("isPublic", False)),
            "downloadCount": 0,
            "rating": 0,
            "ratingCount": 0,
            "version": "1.0.0",
            "cloudProviders": parse_list(data.get("cloudProviders")),
            "complexity": data.get("complexity") or BlueprintComplexity.MEDIUM.value,
            "metadata": {
                "components": 0,
                "connections": 0,
                "estimatedCost": estimated_cost,
                "deploymentTime": data.get("deploymentTime") or "Unknown",
            },
            "hasEmbedding": False,
            "hasAnalysis": False,
        }
        saved = self.collection.insert_one(blueprint)
        metrics.inc("blueprints_created_total")
        log_event("blueprint_created", blueprint_id=saved["id"], type=saved["type"], category=saved["category"])
        return self._embed(saved)

    def get(self, blueprint_id: str) -> dict[str, Any] | None:
        if not blueprint_id:
            return None
        return self.collection.find_one({"id": blueprint_id})

    def require(self, blueprint_id: str) -> dict[str, Any]:
        blueprint = self.get(blueprint_id)
        if blueprint is None:
            raise NotFoundError("Blueprint not found")
        return blueprint

    def update(self, blueprint_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self.require(blueprint_id)
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        _validate_enums(updates)
        for list_field in ("tags", "cloudProviders"):
            if list_field in updates:
                updates[list_field] = parse_list(updates[list_field])
        updates["updatedAt"] = utc_iso_now()
        updated = self.collection.update_one({"id": blueprint_id}, updates)
        if updated is None:
            raise NotFoundError("Blueprint not found")
        log_event("blueprint_updated", blueprint_id=blueprint_id, fields=sorted(updates))
        if CONTENT_FIELDS & set(updates):
            updated = self._embed(updated)
        return updated

    def delete(self, blueprint_id: str) -> bool:
        self.require(blueprint_id)
        self.collection.delete_one({"id": blueprint_id})
        self.analyses.delete_many({"blueprintId": blueprint_id})
        self._drop_vectors(blueprint_id)
        log_event("blueprint_deleted", blueprint_id=blueprint_id)
        return True

    def query(
        self,
        search: Optional[str] = None,
        type: Optional[str] = None,
        category: Optional[str] = None,
        cloud_provider: Optional[str] = None,
        complexity: Optional[str] = None,
        is_public: Optional[bool] = None,
        tags: Optional[list[str]] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        page, limit = clamp_page(page, limit)
        query: dict[str, Any] = {}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"description": pattern}, {"tags": pattern}]
        if type:
            query["type"] = type
        if category:
            query["category"] = category
        if cloud_provider:
            query["cloudProviders"] = cloud_provider
        if complexity:
            query["complexity"] = complexity
        if is_public is not None:
            query["isPublic"] = is_public
        if tags:
            query["tags"] = {"$in": list(tags)}

        field = sort_by if sort_by in SORT_FIELDS else "createdAt"
        direction = 1 if str(sort_order).lower() == "asc" else -1
        total = self.collection.count(query)
        rows = self.collection.find(
            query,
            sort=[(field, direction)],
            skip=(page - 1) * limit,
            limit=limit,
            exclude=LIST_EXCLUDE,
        )
        return {"blueprints": rows, "pagination": build_pagination(page, limit, total)}

    # -- engagement -------------------------------------------------------

    def rate(self, blueprint_id: str, rating: Any) -> dict[str, Any]:
        try:
            value = float(rating)
        except (TypeError, ValueError):
            raise ValidationError("Rating must be between 1 and 5") from None
        if isinstance(rating, bool) or not 1 <= value <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        blueprint = self.require(blueprint_id)
        count = int(blueprint.get("ratingCount") or 0)
        current = float(blueprint.get("rating") or 0)
        new_count = count + 1
        average = round((current * count + value) / new_count, 1)
        updated = self.collection.update_one(
            {"id": blueprint_id},
            {"rating": average, "ratingCount": new_count, "updatedAt": utc_iso_now()},
        )
        log_event("blueprint_rated", blueprint_id=blueprint_id, rating=value, average=average)
        return {
            "id": blueprint_id,
            "rating": updated["rating"],
            "ratingCount": updated["ratingCount"],
            "message": "Rating updated successfully",
        }

    def get_file(self, blueprint_id: str) -> tuple[bytes, str, str]:
        blueprint = self.require(blueprint_id)
        return decode_file(blueprint.get("originalFile"))

    def download(self, blueprint_id: str) -> tuple[bytes, str, str]:
        content, mime_type, name = self.get_file(blueprint_id)
        self.collection.increment({"id": blueprint_id}, "downloadCount", 1)
        metrics.inc("blueprint_downloads_total")
        return content, mime_type, name

    def analytics(self) -> dict[str, Any]:
        blueprints = self.collection.find({}, exclude=LIST_EXCLUDE)
        ratings = [float(b["rating"]) for b in blueprints if (b.get("rating") or 0) > 0]
        providers = [p for b in blueprints for p in (b.get("cloudProviders") or [])]
        by_downloads = sorted(blueprints, key=lambda b: b.get("downloadCount") or 0, reverse=True)
        by_rating = sorted(blueprints, key=lambda b: b.get("rating") or 0, reverse=True)
        return {
            "totalBlueprints": len(blueprints),
            "publicBlueprints": sum(1 for b in blueprints if b.get("isPublic")),
            "totalDownloads": sum(int(b.get("downloadCount") or 0) for b in blueprints),
            "averageRating": round(sum(ratings) / len(ratings), 1) if ratings else 0,
            "byType": _distribution([str(b.get("type") or "unknown") for b in blueprints]),
            "byCategory": _distribution([str(b.get("category") or "unknown") for b in blueprints]),
            "byComplexity": _distribution([str(b.get("complexity") or "unknown") for b in blueprints]),
            "byCloudProvider": _distribution([str(p) for p in providers]),
            "topDownloaded": [_summary(b) for b in by_downloads[:5]],
            "topRated": [_summary(b) for b in by_rating[:5]],
        }

    # -- conversion -------------------------------------------------------

    def convert_from_analysis(self, analysis_id: str, data: dict[str, Any]) -> dict[str, Any]:
        missing = [f for f in ("name", "description", "category") if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError("Name, description, and category are required")
        if self.analysis_service is None:
            raise NotFoundError("Analysis not found")
        _validate_enums({k: data[k] for k in ("category", "complexity") if k in data})
        analysis = self.analysis_service.require(analysis_id)

        components = analysis.get("components") or []
        connections = analysis.get("connections") or []
        providers = cloud_providers_for(components)
        complexity = data.get("complexity") or complexity_for(len(components))
        blueprint_type = blueprint_type_for(analysis.get("fileType"))
        description = str(data["description"]).strip()
        original = analysis.get("originalFile") or None
        now = utc_iso_now()

        blueprint = {
            "id": unique_time_id(self.collection),
            "name": str(data["name"]).strip(),
            "description": description,
            "creatorDescription": data.get("creatorDescription") or None,
            "type": blueprint_type,
            "category": data["category"],
            "tags": parse_list(data.get("tags")),
            "fileName": analysis.get("fileName") or "converted-from-analysis",
            "fileSize": (original or {}).get("size") or 0,
            "fileType": analysis.get("fileType") or "image",
            "originalFile": dict(original) if original else None,
            "createdAt": now,
            "updatedAt": now,
            "createdBy": data.get("createdBy") or "Current User",
            "isPublic": bool(data.get("isPublic", True)),
            "downloadCount": 0,
            "rating": 0,
            "ratingCount": 0,
            "version": "1.0.0",
            "cloudProviders": providers or ["unknown"],
            "complexity": complexity,
            "metadata": {
                "components": len(components),
                "connections": len(connections),
                "estimatedCost": 0,
                "deploymentTime": "Unknown",
                "architectureType": analysis.get("architectureDescription") or "unknown",
                "hybridCloudModel": "multi-cloud" if len(providers) > 1 else "single-cloud",
                "primaryCloudProvider": providers[0] if providers else "unknown",
                "primaryPurpose": description,
                "environmentType": analysis.get("environment") or "production",
                "deploymentModel": "public-cloud",
                "extractedComponents": components,
                "extractedConnections": connections,
            },
            "hasEmbedding": False,
            "hasAnalysis": False,
            "componentCount": len(components),
            "technologyStack": providers,
            "sourceAnalysisId": analysis.get("id"),
        }
        saved = self._embed(self.collection.insert_one(blueprint))

        blueprint_analysis = map_blueprint_analysis(analysis, saved["id"], providers)
        stored = self.analyses.update_one({"blueprintId": saved["id"]}, blueprint_analysis, upsert=True)
        self._embed_analysis(saved, stored, analysis, complexity)

        updated = self.collection.update_one(
            {"id": saved["id"]},
            {
                "hasAnalysis": True,
                "lastAnalysisId": stored["analysisId"],
                "lastAnalysisDate": utc_iso_now(),
                "analysisScores": stored["scores"],
                "componentCount": len(components),
                "architecturePatterns": stored["architecturePatterns"],
                "technologyStack": stored["technologyStack"],
            },
        )
        metrics.inc("blueprints_converted_total")
        log_event("analysis_converted_to_blueprint", analysis_id=analysis.get("id"), blueprint_id=saved["id"])
        return updated

    def _embed_analysis(
        self,
        blueprint: dict[str, Any],
        stored: dict[str, Any],
        analysis: dict[str, Any],
        complexity: str,
    ):
        if self.embeddings is None or not self.embeddings.is_available():
            return
        text = analysis_content(
            analysis.get("components") or [],
            analysis.get("connections") or [],
            analysis.get("summary") or blueprint["description"],
            {
                "architectureType": analysis.get("architectureDescription") or "unknown",
                "cloudProviders": stored["technologyStack"],
                "estimatedComplexity": complexity,
                "primaryPurpose": blueprint["description"],
                "environmentType": analysis.get("environment") or "production",
            },
        )
        point_id = f"blueprint_analysis_{stored['analysisId']}"
        try:
            vector = self.embeddings.embed_text(text)
            self.embeddings.store_analysis_embedding(
                point_id,
                vector,
                {
                    "type": "blueprint_analysis",
                    "blueprintId": blueprint["id"],
                    "analysisId": stored["analysisId"],
                    "blueprintName": blueprint["name"],
                    "blueprintType": blueprint["type"],
                    "blueprintCategory": blueprint["category"],
                    "analysisDate": utc_iso_now(),
                    "scores": stored["scores"],
                    "architecturePatterns": stored["architecturePatterns"],
                    "technologyStack": stored["technologyStack"],
                    "componentCount": len(analysis.get("components") or []),
                },
            )
        except Exception as exc:
            log_event("embedding_store_failed", vector_id=point_id, error=str(exc))


def get_blueprint_service() -> BlueprintService:
    store = get_document_store()
    return BlueprintService(
        store.collection(BLUEPRINTS_COLLECTION),
        store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        get_embedding_service(),
        get_analysis_service(),
    )
