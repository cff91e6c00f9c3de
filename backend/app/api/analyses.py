"""
Architecture analysis endpoints: upload, history, file access, Q&A and
conversion into a blueprint.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from backend.app.analysis.pipeline import ArchitectureAnalyzer, UploadedArtifact, get_architecture_analyzer
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.services.analysis_service import AnalysisService, get_analysis_service
from backend.app.services.blueprint_service import BlueprintService, get_blueprint_service
from backend.app.services.query_service import QueryService, get_query_service


router = APIRouter(prefix="/api", tags=["analyses"])


class QueryRequest(BaseModel):
    query: Any = None


class ConvertRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    creatorDescription: Optional[str] = None
    tags: Any = None
    isPublic: bool = True
    complexity: Optional[str] = None
    createdBy: Optional[str] = None


def content_disposition(disposition: str, name: str) -> str:
    fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_").replace('"', "'")
    if fallback == name:
        return f'{disposition}; filename="{name}"'
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"


def file_response(content: bytes, mime_type: str, name: str, disposition: str = "inline") -> Response:
    return Response(
        content=content,
        media_type=mime_type,
        headers={
            "Content-Disposition": content_disposition(disposition, name),
            "Content-Length": str(len(content)),
            "Cache-Control": "public, max-age=31536000",
        },
    )


@router.post("/analyze")
async def analyze(
    file: Optional[UploadFile] = File(None),
    appId: str = Form(""),
    componentName: str = Form(""),
    description: str = Form(""),
    environment: str = Form(""),
    version: str = Form(""),
    analyzer: ArchitectureAnalyzer = Depends(get_architecture_analyzer),
):
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    upload = UploadedArtifact(
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
        data=data,
        app_id=appId,
        component_name=componentName,
        description=description,
        environment=environment,
        version=version,
    )
    return analyzer.analyze(upload)


@router.get("/analyses")
def list_analyses(
    page: int = 1,
    limit: int = 20,
    appId: Optional[str] = None,
    environment: Optional[str] = None,
    status: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    service: AnalysisService = Depends(get_analysis_service),
):
    return service.list(
        page=page,
        limit=limit,
        app_id=appId,
        environment=environment,
        status=status,
        date_from=dateFrom,
        date_to=dateTo,
    )


@router.get("/analyses/{analysis_id}")
def get_analysis(analysis_id: str, service: AnalysisService = Depends(get_analysis_service)):
    return service.require(analysis_id)


@router.put("/analyses/{analysis_id}")
def update_analysis(
    analysis_id: str,
    payload: dict[str, Any],
    service: AnalysisService = Depends(get_analysis_service),
):
    return service.update(analysis_id, payload)


@router.delete("/analyses/{analysis_id}")
def delete_analysis(analysis_id: str, service: AnalysisService = Depends(get_analysis_service)):
    if not service.delete(analysis_id):
        raise NotFoundError("Analysis not found")
    return {"success": True, "message": "Analysis deleted successfully"}


@router.get("/analysis/{analysis_id}/file")
def get_analysis_file(analysis_id: str, service: AnalysisService = Depends(get_analysis_service)):
    content, mime_type, name = service.get_file(analysis_id)
    return file_response(content, mime_type, name)


@router.post("/analysis/{analysis_id}/query")
def query_analysis(
    analysis_id: str,
    payload: QueryRequest,
    service: QueryService = Depends(get_query_service),
):
    return service.query_analysis(analysis_id, payload.query)


@router.post("/analysis/{analysis_id}/convert-to-blueprint")
def convert_to_blueprint(
    analysis_id: str,
    payload: ConvertRequest,
    service: BlueprintService = Depends(get_blueprint_service),
):
    blueprint = service.convert_from_analysis(analysis_id, payload.model_dump(exclude_none=True))
    return {
        "success": True,
        "blueprint": {
            "id": blueprint["id"],
            "name": blueprint["name"],
            "description": blueprint["description"],
            "type": blueprint["type"],
            "category": blueprint["category"],
            "cloudProviders": blueprint["cloudProviders"],
            "complexity": blueprint["complexity"],
            "hasAnalysis": blueprint.get("hasAnalysis", False),
            "hasEmbedding": blueprint.get("hasEmbedding", False),
        },
        "message": "Analysis converted to blueprint successfully",
    }
