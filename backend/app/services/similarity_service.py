"""
Blueprint recommendations from vector similarity.
"""

from __future__ import annotations

from typing import Any, Optional

from backend.app.core.db.documents import DocumentCollection, get_document_store
from backend.app.core.errors import NotFoundError
from backend.app.embeddings.provider import cosine_similarity
from backend.app.observability.logging import log_event
from backend.app.services.embedding_service import (
    EmbeddingService,
    analysis_content,
    blueprint_content,
    blueprint_vector_id,
    get_embedding_service,
)

BLUEPRINTS_COLLECTION = "blueprints"


def dedupe_by_blueprint(results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    best: dict[str, dict[str, Any]] = {}
    for result in results:
        key = str((result.get("blueprint") or {}).get("id") or result.get("id"))
        current = best.get(key)
        if current is None or result["score"] > current["score"]:
            best[key] = result
    return sorted(best.values(), key=lambda r: r["score"], reverse=True)


def filter_results(results: list[dict[str, Any]], threshold: float, limit: int) -> list[dict[str, Any]]:
    return [r for r in results if r["score"] >= threshold][: max(0, limit)]


class SimilarityService:
    def __init__(self, embeddings: EmbeddingService, blueprints: DocumentCollection | None = None):
        self.embeddings = embeddings
        self.blueprints = blueprints

    def _search_all(self, vector: list[float], limit: int, threshold: float) -> list[dict[str, Any]]:
        store = self.embeddings.store
        combined = store.search_similar_blueprints(vector, limit, threshold)
        combined += store.search_similar_analysis(vector, limit, threshold)
        return dedupe_by_blueprint(combined)

    def find_similar_for_analysis(
        self,
        content: dict[str, Any],
        analysis_id: Optional[str] = None,
    ) -> dict[str, Any]:
        text = analysis_content(
            content.get("components") or [],
            content.get("connections") or [],
            content.get("description") or "",
            content.get("metadata") or {},
        )
        vector = self.embeddings.embed_text(text)
        similar = self._search_all(vector, limit=2, threshold=0.7)[:3]
        log_event("similarity_search_completed", kind="analysis", results=len(similar))
        return {"success": True, "similarBlueprints": similar, "analysisId": analysis_id}

    def search_by_text(self, text: str, limit: int = 5, threshold: float = 0.7) -> list[dict[str, Any]]:
        vector = self.embeddings.embed_text(text)
        return self._search_all(vector, limit=limit, threshold=threshold)[:limit]

    def _blueprint_vector(self, blueprint_id: str) -> list[float]:
        point = self.embeddings.store.get(blueprint_vector_id(blueprint_id))
        if point is not None:
            return point.vector
        blueprint = None
        if self.blueprints is not None:
            blueprint = self.blueprints.find_one({"id": blueprint_id})
        if blueprint is None:
            raise NotFoundError("Blueprint embedding not found")
        log_event("blueprint_embedding_missing", blueprint_id=blueprint_id)
        return self.embeddings.embed_blueprint(blueprint)

    def find_similar_for_blueprint(self, blueprint_id: str) -> dict[str, Any]:
        vector = self._blueprint_vector(blueprint_id)
        hits = self.embeddings.store.search_similar_blueprints(vector, limit=3, threshold=0.7)
        similar = [h for h in hits if h["blueprint"]["id"] != blueprint_id][:2]
        return {"success": True, "similarBlueprints": similar, "blueprintId": blueprint_id}

    def find_similar_by_content(self, text: str) -> dict[str, Any]:
        query_doc = {
            "id": "search",
            "name": "Search Query",
            "description": text,
            "type": "search",
            "category": "search",
            "cloudProviders": ["unknown"],
            "complexity": "unknown",
            "tags": [],
            "metadata": {},
        }
        vector = self.embeddings.embed_text(blueprint_content(query_doc))
        similar = self.embeddings.store.search_similar_blueprints(vector, limit=5, threshold=0.6)
        return {"success": True, "similarBlueprints": similar}

    def similarity_score(self, blueprint_id_1: str, blueprint_id_2: str) -> float:
        first = self.embeddings.store.get(blueprint_vector_id(blueprint_id_1))
        second = self.embeddings.store.get(blueprint_vector_id(blueprint_id_2))
        if first is None or second is None:
            raise NotFoundError("One or both blueprint embeddings not found")
        return cosine_similarity(first.vector, second.vector)

    def similarity_stats(self, blueprint_id: str, similar: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        if similar is None:
            similar = self.find_similar_for_blueprint(blueprint_id)["similarBlueprints"]
        scores = [r["score"] for r in similar]
        if not scores:
            return {"totalSimilar": 0, "averageSimilarity": 0, "highestSimilarity": 0, "lowestSimilarity": 0}
        return {
            "totalSimilar": len(scores),
            "averageSimilarity": sum(scores) / len(scores),
            "highestSimilarity": max(scores),
            "lowestSimilarity": min(scores),
        }


def get_similarity_service() -> SimilarityService:
    return SimilarityService(
        get_embedding_service(),
        get_document_store().collection(BLUEPRINTS_COLLECTION),
    )
