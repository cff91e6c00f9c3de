"""
Vector storage abstraction.

Uses Qdrant when available; otherwise falls back to a brute-force in-process
store persisted as local JSON.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from backend.app.core.config import get_settings
from backend.app.observability.logging import log_event
from backend.app.vector_store.qdrant_client import get_qdrant_client, point_uuid, qdrant_distance

BLUEPRINT_TYPE = "blueprint"
ANALYSIS_TYPES = ("blueprint_analysis", "architecture_analysis")


@dataclass
class VectorPoint:
    id: str
    vector: list[float]
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "vector": self.vector, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VectorPoint":
        return cls(
            id=str(data.get("id") or ""),
            vector=[float(x) for x in data.get("vector") or []],
            payload=dict(data.get("payload") or {}),
        )


@dataclass
class VectorHit:
    id: str
    score: float
    payload: dict[str, Any]


def _matches_filter(payload: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    for key, expected in (filters or {}).items():
        actual = payload.get(key)
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def blueprint_hit_to_similar(hit: VectorHit) -> dict[str, Any]:
    p = hit.payload
    return {
        "id": hit.id,
        "score": hit.score,
        "blueprint": {
            "id": p.get("blueprintId"),
            "name": p.get("name"),
            "type": p.get("blueprintType") or p.get("type"),
            "category": p.get("category"),
            "cloudProvider": p.get("cloudProvider"),
            "complexity": p.get("complexity"),
            "tags": p.get("tags") or [],
        },
    }


def analysis_complexity(component_count: Any) -> str:
    try:
        count = int(component_count or 0)
    except (TypeError, ValueError):
        count = 0
    if count > 10:
        return "high"
    if count > 5:
        return "medium"
    return "low"


def analysis_hit_to_similar(hit: VectorHit) -> dict[str, Any]:
    p = hit.payload
    patterns = p.get("architecturePatterns") or []
    stack = p.get("technologyStack") or []
    providers = p.get("cloudProviders") or []
    return {
        "id": hit.id,
        "score": hit.score,
        "blueprint": {
            "id": p.get("blueprintId") or p.get("analysisId") or "unknown",
            "name": p.get("blueprintName") or p.get("analysisName") or "Unknown",
            "type": "architecture_analysis" if p.get("type") == "architecture_analysis" else "analysis",
            "category": (patterns[0] if patterns else None) or p.get("architectureType") or "Unknown",
            "cloudProvider": (stack[0] if stack else None) or (providers[0] if providers else None) or "Unknown",
            "complexity": analysis_complexity(p.get("componentCount")),
            "tags": patterns,
        },
    }


class VectorStoreRepository:
    backend = "base"

    def upsert(self, point: VectorPoint):
        raise NotImplementedError

    def search(
        self,
        vector: list[float],
        limit: int = 10,
        threshold: float = 0.0,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorHit]:
        raise NotImplementedError

    def get(self, point_id: str) -> VectorPoint | None:
        raise NotImplementedError

    def delete(self, point_id: str) -> bool:
        raise NotImplementedError

    def delete_where(self, filter: dict[str, Any]) -> int:
        """Remove every point whose payload matches `filter`; returns how many went."""
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError

    def stats(self) -> dict[str, Any]:
        raise NotImplementedError

    def search_similar_blueprints(
        self, vector: list[float], limit: int = 2, threshold: float = 0.7
    ) -> list[dict[str, Any]]:
        hits = self.search(vector, limit=limit, threshold=threshold, filter={"type": BLUEPRINT_TYPE})
        return [blueprint_hit_to_similar(h) for h in hits]

    def search_similar_analysis(
        self, vector: list[float], limit: int = 2, threshold: float = 0.7
    ) -> list[dict[str, Any]]:
        hits = self.search(vector, limit=limit, threshold=threshold, filter={"type": list(ANALYSIS_TYPES)})
        return [analysis_hit_to_similar(h) for h in hits]


class InMemoryVectorStore(VectorStoreRepository):
    """Linear scan over every stored point. Fine for a few thousand blueprints."""

    backend = "memory"

    def __init__(self, dimensions: int, distance: str = "Cosine", path: Path | None = None):
        self.dimensions = dimensions
        self.distance = (distance or "Cosine").strip().lower()
        if self.distance not in {"cosine", "euclid", "dot"}:
            self.distance = "cosine"
        self.path = path
        self._lock = Lock()
        self._points: dict[str, VectorPoint] = {}
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._load()

    def _load(self):
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            log_event("vector_store_load_failed", error=str(exc), path=str(self.path))
            return
        if not isinstance(data, list):
            return
        for item in data:
            if not isinstance(item, dict):
                continue
            point = VectorPoint.from_dict(item)
            if point.id and len(point.vector) == self.dimensions:
                self._points[point.id] = point

    def _save(self):
        if self.path is None:
            return
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([p.to_dict() for p in self._points.values()], f)

    def _check_dimensions(self, vector: list[float]):
        if len(vector) != self.dimensions:
            raise ValueError(f"Vector dimension {len(vector)} does not match store dimension {self.dimensions}")

    def _score(self, a: list[float], b: list[float]) -> float:
        if self.distance == "dot":
            return sum(x * y for x, y in zip(a, b))
        if self.distance == "euclid":
            d = math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))
            return 1.0 / (1.0 + d)
        dot = sum(x * y for x, y in zip(a, b))
        norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
        return dot / norm if norm else 0.0

    def upsert(self, point: VectorPoint):
        self._check_dimensions(point.vector)
        with self._lock:
            self._points[point.id] = VectorPoint(point.id, list(point.vector), dict(point.payload))
            self._save()

    def search(
        self,
        vector: list[float],
        limit: int = 10,
        threshold: float = 0.0,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorHit]:
        self._check_dimensions(vector)
        hits: list[VectorHit] = []
        with self._lock:
            for point in self._points.values():
                if not _matches_filter(point.payload, filter):
                    continue
                score = self._score(vector, point.vector)
                if score >= threshold:
                    hits.append(VectorHit(id=point.id, score=score, payload=dict(point.payload)))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[: max(0, limit)]

    def get(self, point_id: str) -> VectorPoint | None:
        with self._lock:
            point = self._points.get(point_id)
            if point is None:
                return None
            return VectorPoint(point.id, list(point.vector), dict(point.payload))

    def delete(self, point_id: str) -> bool:
        with self._lock:
            if point_id not in self._points:
                return False
            del self._points[point_id]
            self._save()
            return True

    def delete_where(self, filter: dict[str, Any]) -> int:
        if not filter:
            raise ValueError("delete_where needs a non-empty filter")
        with self._lock:
            doomed = [pid for pid, p in self._points.items() if _matches_filter(p.payload, filter)]
            for pid in doomed:
                del self._points[pid]
            if doomed:
                self._save()
            return len(doomed)

    def clear(self):
        with self._lock:
            self._points.clear()
            self._save()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            count = len(self._points)
        return {
            "backend": self.backend,
            "totalVectors": count,
            "dimensions": self.dimensions,
            "distance": self.distance,
        }


class QdrantVectorStore(VectorStoreRepository):
    backend = "qdrant"

    def __init__(self, client: Any = None):
        self.settings = get_settings()
        self.client = client if client is not None else get_qdrant_client()
        self.collection = self.settings.qdrant_collection
        self.dimensions = self.settings.embeddings_dimensions
        if self.client is not None:
            self._ensure_collection()

    def _ensure_collection(self):
        from qdrant_client.models import VectorParams

        try:
            names = {c.name for c in self.client.get_collections().collections}
            if self.collection not in names:
                self.client.create_collection(
                    collection_name=self.collection,
                    vectors_config=VectorParams(
                        size=self.dimensions,
                        distance=qdrant_distance(self.settings.vector_distance),
                    ),
                )
                log_event("qdrant_collection_created", collection=self.collection, size=self.dimensions)
        except Exception as exc:
            log_event("qdrant_collection_init_failed", error=str(exc), collection=self.collection)

    def _filter(self, filters: Optional[dict[str, Any]]):
        from qdrant_client.models import FieldCondition, Filter, MatchAny, MatchValue

        if not filters:
            return None
        conditions = []
        for key, expected in filters.items():
            if isinstance(expected, (list, tuple, set)):
                conditions.append(FieldCondition(key=key, match=MatchAny(any=list(expected))))
            else:
                conditions.append(FieldCondition(key=key, match=MatchValue(value=expected)))
        return Filter(must=conditions)

    def _require_client(self):
        if self.client is None:
            raise RuntimeError("Qdrant client unavailable")

    def upsert(self, point: VectorPoint):
        from qdrant_client.models import PointStruct

        self._require_client()
        if len(point.vector) != self.dimensions:
            raise ValueError(f"Vector dimension {len(point.vector)} does not match store dimension {self.dimensions}")
        payload = {**point.payload, "vectorId": point.id}
        self.client.upsert(
            collection_name=self.collection,
            points=[PointStruct(id=point_uuid(point.id), vector=point.vector, payload=payload)],
            wait=True,
        )

    def search(
        self,
        vector: list[float],
        limit: int = 10,
        threshold: float = 0.0,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorHit]:
        self._require_client()
        if len(vector) != self.dimensions:
            raise ValueError(f"Vector dimension {len(vector)} does not match store dimension {self.dimensions}")
        response = self.client.query_points(
            collection_name=self.collection,
            query=vector,
            query_filter=self._filter(filter),
            limit=limit,
            score_threshold=threshold,
            with_payload=True,
        )
        hits: list[VectorHit] = []
        for p in response.points:
            payload = dict(p.payload or {})
            hits.append(
                VectorHit(id=str(payload.get("vectorId") or p.id), score=float(p.score), payload=payload)
            )
        return hits

    def get(self, point_id: str) -> VectorPoint | None:
        self._require_client()
        points = self.client.retrieve(
            collection_name=self.collection,
            ids=[point_uuid(point_id)],
            with_payload=True,
            with_vectors=True,
        )
        if not points:
            return None
        p = points[0]
        return VectorPoint(id=point_id, vector=list(p.vector or []), payload=dict(p.payload or {}))

    def delete(self, point_id: str) -> bool:
        from qdrant_client.models import PointIdsList

        self._require_client()
        self.client.delete(
            collection_name=self.collection,
            points_selector=PointIdsList(points=[point_uuid(point_id)]),
            wait=True,
        )
        return True

    def delete_where(self, filter: dict[str, Any]) -> int:
        from qdrant_client.models import FilterSelector

        if not filter:
            raise ValueError("delete_where needs a non-empty filter")
        self._require_client()
        selector = self._filter(filter)
        matched = self.client.count(collection_name=self.collection, count_filter=selector, exact=True).count
        if matched:
            self.client.delete(
                collection_name=self.collection,
                points_selector=FilterSelector(filter=selector),
                wait=True,
            )
        return matched

    def clear(self):
        self._require_client()
        self.client.delete_collection(collection_name=self.collection)
        self._ensure_collection()

    def stats(self) -> dict[str, Any]:
        self._require_client()
        info = self.client.get_collection(collection_name=self.collection)
        return {
            "backend": self.backend,
            "collection": self.collection,
            "totalVectors": info.points_count or 0,
            "dimensions": self.dimensions,
            "distance": self.settings.vector_distance,
            "status": str(info.status),
        }


_repo_cache: VectorStoreRepository | None = None


def get_vector_store() -> VectorStoreRepository:
    global _repo_cache
    if _repo_cache is not None:
        return _repo_cache

    repo: VectorStoreRepository
    settings = get_settings()
    if settings.vector_store_type == "faiss":
        repo = InMemoryVectorStore(settings.embeddings_dimensions, settings.vector_distance, settings.vector_store_path)
        log_event("vector_store_ready", backend="memory", path=str(settings.vector_store_path))
        _repo_cache = repo
        return _repo_cache

    qdrant_repo = QdrantVectorStore()
    if qdrant_repo.client is not None:
        repo = qdrant_repo
        log_event("vector_store_ready", backend="qdrant", collection=qdrant_repo.collection)
    elif settings.require_qdrant:
        raise RuntimeError("Qdrant is required but unavailable. Check QDRANT_URL and QDRANT_API_KEY.")
    else:
        repo = InMemoryVectorStore(settings.embeddings_dimensions, settings.vector_distance, settings.vector_store_path)
        log_event("vector_store_ready", backend="memory_fallback", path=str(settings.vector_store_path))

    _repo_cache = repo
    return _repo_cache


def reset_vector_store():
    global _repo_cache
    _repo_cache = None
