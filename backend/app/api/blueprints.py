"""
Blueprint library endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from backend.app.api.analyses import QueryRequest, file_response
from backend.app.core.errors import NotFoundError, ServiceUnavailableError, ValidationError
from backend.app.services.blueprint_analysis_service import (
    BlueprintAnalysisService,
    get_blueprint_analysis_service,
)
from backend.app.services.blueprint_service import BlueprintService, get_blueprint_service, parse_list
from backend.app.services.query_service import QueryService, get_query_service
from backend.app.services.similarity_service import SimilarityService, filter_results, get_similarity_service


router = APIRouter(prefix="/api/blueprints", tags=["blueprints"])


class RateRequest(BaseModel):
    rating: Any = None


class AnalysisSimilarityRequest(BaseModel):
    analysisContent: Optional[dict[str, Any]] = None
    analysisId: Optional[str] = None
    limit: int = 2
    threshold: float = 0.7


class BlueprintsQueryRequest(BaseModel):
    query: Any = None
    limit: int = 5
    threshold: float = 0.7


def _truthy(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _require_embeddings(similarity: SimilarityService):
    if not similarity.embeddings.is_available():
        raise ServiceUnavailableError("Embedding service not available")


@router.get("")
def list_blueprints(
    search: Optional[str] = None,
    type: Optional[str] = None,
    category: Optional[str] = None,
    cloudProvider: Optional[str] = None,
    complexity: Optional[str] = None,
    isPublic: Optional[str] = None,
    tags: Optional[str] = None,
    sortBy: str = "createdAt",
    sortOrder: str = "desc",
    page: int = 1,
    limit: int = 20,
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.query(
        search=search,
        type=type,
        category=category,
        cloud_provider=cloudProvider,
        complexity=complexity,
        is_public=_truthy(isPublic),
        tags=parse_list(tags) if tags else None,
        sort_by=sortBy,
        sort_order=sortOrder,
        page=page,
        limit=limit,
    )


@router.post("")
async def create_blueprint(
    file: Optional[UploadFile] = File(None),
    name: str = Form(""),
    description: str = Form(""),
    type: str = Form(""),
    category: str = Form(""),
    tags: str = Form(""),
    cloudProviders: str = Form(""),
    complexity: str = Form(""),
    isPublic: str = Form("false"),
    creatorDescription: str = Form(""),
    estimatedCost: str = Form(""),
    deploymentTime: str = Form(""),
    service: BlueprintService = Depends(get_blueprint_service),
):
    content = await file.read() if file is not None and file.filename else None
    data = {
        "name": name,
        "description": description,
        "type": type,
        "category": category,
        "tags": tags,
        "cloudProviders": cloudProviders,
        "complexity": complexity or None,
        "isPublic": _truthy(isPublic) or False,
        "creatorDescription": creatorDescription,
        "estimatedCost": estimatedCost,
        "deploymentTime": deploymentTime,
    }
    blueprint = service.create(
        data,
        file_name=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
        content=content,
    )
    return {
        "success": True,
        "blueprint": {k: v for k, v in blueprint.items() if k != "originalFile"},
        "message": "Blueprint uploaded successfully",
    }


@router.get("/analytics")
def blueprint_analytics(service: BlueprintService = Depends(get_blueprint_service)):
    return service.analytics()


@router.get("/similarity")
def similar_blueprints(
    query: Optional[str] = None,
    blueprintId: Optional[str] = None,
    limit: int = 5,
    threshold: float = 0.6,
    similarity: SimilarityService = Depends(get_similarity_service),
):
    if not query and not blueprintId:
        raise ValidationError("Either query or blueprintId is required")
    _require_embeddings(similarity)
    if blueprintId:
        result = similarity.find_similar_for_blueprint(blueprintId)
    else:
        result = similarity.find_similar_by_content(query)
    similar = filter_results(result["similarBlueprints"], threshold, limit)
    return {"success": True, "similarBlueprints": similar, "total": len(similar)}


@router.post("/similarity")
def similar_for_analysis(
    payload: AnalysisSimilarityRequest,
    similarity: SimilarityService = Depends(get_similarity_service),
):
    if not payload.analysisContent:
        raise ValidationError("Analysis content is required")
    _require_embeddings(similarity)
    result = similarity.find_similar_for_analysis(payload.analysisContent, payload.analysisId)
    similar = filter_results(result["similarBlueprints"], payload.threshold, payload.limit)
    return {
        "success": True,
        "similarBlueprints": similar,
        "analysisId": payload.analysisId,
        "total": len(similar),
    }


@router.post("/query")
def query_blueprints(
    payload: BlueprintsQueryRequest,
    service: QueryService = Depends(get_query_service),
):
    return service.query_blueprints(payload.query, limit=payload.limit, threshold=payload.threshold)


@router.get("/{blueprint_id}")
def get_blueprint(blueprint_id: str, service: BlueprintService = Depends(get_blueprint_service)):
    blueprint = service.require(blueprint_id)
    return {k: v for k, v in blueprint.items() if k != "originalFile"}


@router.put("/{blueprint_id}")
def update_blueprint(
    blueprint_id: str,
    payload: dict[str, Any],
    service: BlueprintService = Depends(get_blueprint_service),
):
    blueprint = service.update(blueprint_id, payload)
    return {
        "success": True,
        "blueprint": {k: v for k, v in blueprint.items() if k != "originalFile"},
        "message": "Blueprint updated successfully",
    }


@router.delete("/{blueprint_id}")
def delete_blueprint(blueprint_id: str, service: BlueprintService = Depends(get_blueprint_service)):
    service.delete(blueprint_id)
    return {"success": True, "message": "Blueprint deleted successfully"}


@router.post("/{blueprint_id}/rate")
def rate_blueprint(
    blueprint_id: str,
    payload: RateRequest,
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.rate(blueprint_id, payload.rating)


@router.get("/{blueprint_id}/download")
def download_blueprint(blueprint_id: str, service: BlueprintService = Depends(get_blueprint_service)):
    content, mime_type, name = service.download(blueprint_id)
    return file_response(content, mime_type, name, disposition="attachment")


@router.get("/{blueprint_id}/file")
def blueprint_file(blueprint_id: str, service: BlueprintService = Depends(get_blueprint_service)):
    content, mime_type, name = service.get_file(blueprint_id)
    return file_response(content, mime_type, name)


@router.get("/{blueprint_id}/analyze")
def get_blueprint_analysis(
    blueprint_id: str,
    service: BlueprintAnalysisService = Depends(get_blueprint_analysis_service),
):
    analysis = service.get_analysis(blueprint_id)
    if analysis is None:
        raise NotFoundError("Analysis not found")
    return {"success": True, "analysis": analysis}


@router.post("/{blueprint_id}/analyze")
def analyze_blueprint(
    blueprint_id: str,
    service: BlueprintAnalysisService = Depends(get_blueprint_analysis_service),
):
    analysis = service.analyze_blueprint(blueprint_id)
    return {"success": True, "analysis": analysis, "message": "Blueprint analysis completed successfully"}


@router.get("/{blueprint_id}/similarity")
def blueprint_similarity(
    blueprint_id: str,
    similarity: SimilarityService = Depends(get_similarity_service),
):
    _require_embeddings(similarity)
    result = similarity.find_similar_for_blueprint(blueprint_id)
    similar = result["similarBlueprints"]
    return {
        "success": True,
        "blueprintId": blueprint_id,
        "similarBlueprints": similar,
        "stats": similarity.similarity_stats(blueprint_id, similar),
    }


@router.post("/{blueprint_id}/query")
def query_blueprint(
    blueprint_id: str,
    payload: QueryRequest,
    service: QueryService = Depends(get_query_service),
):
    return service.query_blueprint(blueprint_id, payload.query)
