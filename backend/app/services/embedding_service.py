"""
Turns blueprints and analyses into searchable vectors.
"""

from __future__ import annotations

from typing import Any, Optional

from backend.app.embeddings.provider import EmbeddingProvider, get_embedding_provider
from backend.app.observability.logging import log_event
from backend.app.utils.dates import utc_iso_now
from backend.app.vector_store.repository import BLUEPRINT_TYPE, VectorPoint, VectorStoreRepository, get_vector_store


def blueprint_vector_id(blueprint_id: str) -> str:
    return f"blueprint_{blueprint_id}"


def _names(items: Any, key: str, fallback: str) -> str:
    if not isinstance(items, list):
        return ""
    out = []
    for item in items:
        if isinstance(item, str):
            out.append(item)
        elif isinstance(item, dict):
            out.append(str(item.get(key) or item.get("type") or fallback))
    return ", ".join(out)


def _join(values: Any) -> str:
    if isinstance(values, (list, tuple)):
        return ", ".join(str(v) for v in values)
    return str(values or "")


def blueprint_content(blueprint: dict[str, Any]) -> str:
    metadata = blueprint.get("metadata") or {}
    lines = [
        f"Name: {blueprint.get('name', '')}",
        f"Description: {blueprint.get('description', '')}",
        f"Type: {blueprint.get('type', '')}",
        f"Category: {blueprint.get('category', '')}",
        f"Cloud Provider: {_join(blueprint.get('cloudProviders'))}",
        f"Complexity: {blueprint.get('complexity', '')}",
        f"Tags: {_join(blueprint.get('tags'))}",
        f"Components: {_names(metadata.get('extractedComponents') or metadata.get('components'), 'name', 'component')}",
        f"Connections: {_names(metadata.get('extractedConnections') or metadata.get('connections'), 'type', 'connection')}",
        f"Purpose: {metadata.get('primaryPurpose') or 'Architecture blueprint'}",
        f"Environment: {metadata.get('environmentType') or 'Production'}",
        f"Deployment: {metadata.get('deploymentModel') or 'Cloud'}",
    ]
    return "\n".join(lines)


def analysis_content(
    components: list[Any],
    connections: list[Any],
    description: str = "",
    metadata: Optional[dict[str, Any]] = None,
) -> str:
    metadata = metadata or {}
    component_text = ", ".join(
        c if isinstance(c, str) else f"{c.get('name') or 'component'} ({c.get('type') or 'unknown'})"
        for c in components or []
        if isinstance(c, (str, dict))
    )
    lines = [
        f"Description: {description or 'Architecture analysis'}",
        f"Components: {component_text}",
        f"Connections: {_names(connections, 'type', 'connection')}",
        f"Architecture Type: {metadata.get('architectureType') or 'Unknown'}",
        f"Cloud Providers: {_join(metadata.get('cloudProviders')) or 'Unknown'}",
        f"Complexity: {metadata.get('estimatedComplexity') or 'Unknown'}",
        f"Purpose: {metadata.get('primaryPurpose') or 'Architecture analysis'}",
        f"Environment: {metadata.get('environmentType') or 'Unknown'}",
    ]
    return "\n".join(lines)


class EmbeddingService:
    def __init__(self, provider: EmbeddingProvider | None, store: VectorStoreRepository | None):
        self.provider = provider
        self.store = store

    def is_available(self) -> bool:
        return self.provider is not None and self.store is not None

    def _require(self):
        if not self.is_available():
            raise RuntimeError("Embedding service not available")

    def embed_text(self, text: str) -> list[float]:
        self._require()
        return self.provider.embed(text)

    def embed_blueprint(self, blueprint: dict[str, Any]) -> list[float]:
        return self.embed_text(blueprint_content(blueprint))

    def store_blueprint_embedding(self, blueprint: dict[str, Any]) -> str:
        vector = self.embed_blueprint(blueprint)
        vector_id = blueprint_vector_id(blueprint["id"])
        content = blueprint_content(blueprint)
        self.store.upsert(
            VectorPoint(
                id=vector_id,
                vector=vector,
                payload={
                    "type": BLUEPRINT_TYPE,
                    "blueprintId": blueprint["id"],
                    "name": blueprint.get("name"),
                    "blueprintType": blueprint.get("type"),
                    "category": blueprint.get("category"),
                    "cloudProvider": _join(blueprint.get("cloudProviders")),
                    "complexity": blueprint.get("complexity"),
                    "tags": blueprint.get("tags") or [],
                    "content": content,
                    "createdAt": blueprint.get("createdAt") or utc_iso_now(),
                    "updatedAt": utc_iso_now(),
                },
            )
        )
        log_event("embedding_stored", vector_id=vector_id, kind="blueprint")
        return vector_id

    def delete_blueprint_embedding(self, blueprint_id: str) -> bool:
        self._require()
        return self.store.delete(blueprint_vector_id(blueprint_id))

    def store_analysis_embedding(self, point_id: str, vector: list[float], payload: dict[str, Any]) -> str:
        self._require()
        self.store.upsert(VectorPoint(id=point_id, vector=vector, payload=payload))
        log_event("embedding_stored", vector_id=point_id, kind=payload.get("type"))
        return point_id

    def delete_embedding(self, point_id: str) -> bool:
        self._require()
        return self.store.delete(point_id)

    def delete_blueprint_vectors(self, blueprint_id: str) -> int:
        """Blueprint vector plus every analysis vector tagged with the blueprint."""
        self._require()
        removed = self.store.delete_where({"blueprintId": blueprint_id})
        log_event("embeddings_deleted", blueprint_id=blueprint_id, removed=removed)
        return removed


def get_embedding_service() -> EmbeddingService:
    return EmbeddingService(get_embedding_provider(), get_vector_store())
