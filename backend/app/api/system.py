"""
Runtime inspection endpoints: LLM status, configuration, dashboard, cache and
usage accounting, plus connectivity probes for the LLM and embeddings.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.app.analysis.cache import AnalysisCache, get_analysis_cache
from backend.app.core.config import get_settings
from backend.app.core.db.documents import get_document_store
from backend.app.core.errors import ValidationError
from backend.app.core.llm.client import LLMClient, get_llm_client, llm_status
from backend.app.embeddings.provider import EmbeddingProvider, get_embedding_provider
from backend.app.services.analysis_service import AnalysisService, get_analysis_service
from backend.app.services.token_usage import usage_summary
from backend.app.utils.dates import utc_iso_now


router = APIRouter(prefix="/api", tags=["system"])


class TestLLMRequest(BaseModel):
    prompt: Optional[str] = None


class TestEmbeddingsRequest(BaseModel):
    text: Optional[str] = None


@router.get("/status")
def status():
    return llm_status()


@router.get("/config")
def runtime_config():
    settings = get_settings()
    return {
        "appName": settings.app_name,
        "appEnv": settings.app_env,
        "documentStore": get_document_store().backend,
        "llm": {
            "provider": settings.llm_provider or "auto",
            "model": settings.llm_model or "provider default",
            "temperature": settings.llm_temperature,
            "maxTokens": settings.llm_max_tokens,
            "timeoutSeconds": settings.llm_timeout_seconds,
        },
        "embeddings": {
            "provider": settings.embeddings_provider,
            "model": settings.embeddings_model,
            "dimensions": settings.embeddings_dimensions,
        },
        "vectorStore": {
            "type": settings.vector_store_type,
            "collection": settings.qdrant_collection,
            "distance": settings.vector_distance,
            "requireQdrant": settings.require_qdrant,
        },
        "analysisCache": {
            "enabled": settings.enable_analysis_cache,
            "ttlHours": settings.analysis_cache_ttl_hours,
        },
    }


@router.get("/dashboard")
def dashboard(service: AnalysisService = Depends(get_analysis_service)):
    return service.dashboard_stats()


@router.get("/cache/stats")
def cache_stats(cache: Optional[AnalysisCache] = Depends(get_analysis_cache)):
    if cache is None:
        return {"enabled": False, "totalCached": 0, "expiredCount": 0, "activeCount": 0, "entries": []}
    return {"enabled": True, "ttlHours": cache.ttl_hours, **cache.stats()}


@router.delete("/cache")
def clear_cache(expiredOnly: bool = False, cache: Optional[AnalysisCache] = Depends(get_analysis_cache)):
    if cache is None:
        return {"success": True, "removed": 0, "message": "Analysis cache is disabled"}
    removed = cache.clear_expired() if expiredOnly else cache.clear_all()
    scope = "expired" if expiredOnly else "all"
    return {"success": True, "removed": removed, "message": f"Cleared {removed} {scope} cache entries"}


@router.get("/usage")
def usage():
    return usage_summary()


@router.post("/test-llm")
def test_llm(payload: TestLLMRequest, llm: LLMClient = Depends(get_llm_client)):
    prompt = (payload.prompt or "").strip() or "Reply with the single word: ready"
    answer = llm.complete(prompt, max_tokens=200, purpose="connectivity_test")
    return {
        "success": True,
        "provider": llm.provider,
        "model": llm.model,
        "prompt": prompt,
        "response": answer,
        "timestamp": utc_iso_now(),
    }


@router.post("/test-embeddings")
def test_embeddings(
    payload: TestEmbeddingsRequest,
    provider: EmbeddingProvider = Depends(get_embedding_provider),
):
    text = (payload.text or "").strip()
    if not text:
        raise ValidationError("Text is required")
    vector = provider.embed(text)
    result: dict[str, Any] = {
        "success": True,
        **provider.info(),
        "dimensions": len(vector),
        "preview": vector[:5],
        "timestamp": utc_iso_now(),
    }
    return result
