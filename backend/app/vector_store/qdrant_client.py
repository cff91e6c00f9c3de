"""
Qdrant integration helpers.
"""

from __future__ import annotations

import uuid
from typing import Any

from qdrant_client import QdrantClient
from qdrant_client.models import Distance

from backend.app.core.config import get_settings
from backend.app.observability.logging import log_event

DISTANCES = {
    "cosine": Distance.COSINE,
    "euclid": Distance.EUCLID,
    "dot": Distance.DOT,
}


def qdrant_distance(name: str) -> Distance:
    return DISTANCES.get((name or "").strip().lower(), Distance.COSINE)


def point_uuid(vector_id: str) -> str:
    # Qdrant only accepts unsigned ints or UUIDs as point ids.
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"archlens:{vector_id}"))


def get_qdrant_client() -> Any | None:
    settings = get_settings()
    kwargs = {"url": settings.qdrant_url}
    if settings.qdrant_api_key:
        kwargs["api_key"] = settings.qdrant_api_key
    try:
        client = QdrantClient(**kwargs)
        # Validate auth/endpoint early so runtime can fail fast when required.
        client.get_collections()
        return client
    except Exception as exc:
        log_event("qdrant_unavailable", error=str(exc), url=settings.qdrant_url)
        return None
