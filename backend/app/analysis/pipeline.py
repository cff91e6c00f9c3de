"""
Two-stage architecture analysis.

Stage one extracts components, connections and metadata from the uploaded
artifact. Stage two assesses the extracted architecture against the enabled
review checklist and produces risks, gaps, cost issues, recommendations and
scores.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from backend.app.analysis.cache import AnalysisCache, generate_content_hash, get_analysis_cache
from backend.app.analysis.cloud_detection import apply_detected_providers
from backend.app.analysis.json_recovery import coerce_number, coerce_score, ensure_array, extract_json_object
from backend.app.analysis.prompts import build_analysis_prompt, build_extraction_prompt
from backend.app.core.db.documents import unique_time_id
from backend.app.core.llm.client import LLMClient, get_llm_client
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics
from backend.app.services.analysis_service import AnalysisService, get_analysis_service
from backend.app.services.checklist_service import ChecklistService, get_checklist_service
from backend.app.utils.dates import utc_iso_now

IAC_MARKERS = ("resource", "provider", "apiVersion", "kind")

# score field -> key inside a nested "scores" object
SCORE_FIELDS = {
    "resiliencyScore": "resiliency",
    "securityScore": "security",
    "costEfficiencyScore": "costEfficiency",
    "complianceScore": "compliance",
}


@dataclass
class UploadedArtifact:
    filename: str
    content_type: str
    data: bytes
    app_id: str = ""
    component_name: str = ""
    description: str = ""
    environment: str = ""
    version: str = ""

    @property
    def is_image(self) -> bool:
        return (self.content_type or "").startswith("image/")

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class PreparedContent:
    file_type: str
    prompt_content: str
    encoded: str
    image_optimization: Optional[dict[str, Any]] = None


def classify_text(text: str) -> str:
    return "iac" if any(marker in text for marker in IAC_MARKERS) else "text"


def prepare_content(upload: UploadedArtifact) -> PreparedContent:
    encoded = base64.b64encode(upload.data).decode("ascii")
    if upload.is_image:
        size_kb = round(upload.size / 1024)
        return PreparedContent(
            file_type="image",
            prompt_content=f"Base64 Image Data: {encoded}",
            encoded=encoded,
            image_optimization={
                "optimized": False,
                "originalSizeKB": size_kb,
                "optimizedSizeKB": size_kb,
                "compressionRatio": 1.0,
                "format": upload.content_type,
            },
        )
    text = upload.data.decode("utf-8", errors="replace")
    return PreparedContent(file_type=classify_text(text), prompt_content=text, encoded=encoded)


def extract_scores(parsed: dict[str, Any]) -> dict[str, Any]:
    nested = parsed.get("scores") if isinstance(parsed.get("scores"), dict) else {}
    scores = {}
    for field, nested_key in SCORE_FIELDS.items():
        raw = parsed.get(field)
        if raw is None:
            raw = nested.get(nested_key)
        scores[field] = coerce_score(raw)
    return scores


def total_savings(cost_issues: list[Any]) -> float | int:
    total = 0.0
    for issue in cost_issues:
        if not isinstance(issue, dict):
            continue
        raw = issue.get("estimatedSavings")
        if raw is None:
            raw = issue.get("estimatedSavingsUSD")
        total += coerce_number(raw)
    return int(total) if total.is_integer() else round(total, 2)


class ArchitectureAnalyzer:
    """Runs both stages. The LLM client is resolved on first use when `llm` is None."""

    def __init__(
        self,
        llm: LLMClient | None,
        analysis_service: AnalysisService,
        checklist_service: ChecklistService,
        cache: AnalysisCache | None = None,
        llm_factory: Callable[[], LLMClient] = get_llm_client,
    ):
        self._llm = llm
        self._llm_factory = llm_factory
        self.analysis_service = analysis_service
        self.checklist_service = checklist_service
        self.cache = cache

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = self._llm_factory()
        return self._llm

    def extract(self, upload: UploadedArtifact, prepared: PreparedContent) -> dict[str, Any]:
        prompt = build_extraction_prompt(prepared.file_type, upload.filename, prepared.prompt_content)
        raw = self.llm.complete(prompt, purpose="analysis_extraction")
        parsed = extract_json_object(raw)

        components = ensure_array(parsed.get("components"), [])
        connections = ensure_array(parsed.get("connections"), [])
        metadata = parsed.get("metadata") if isinstance(parsed.get("metadata"), dict) else {}
        metadata = apply_detected_providers(
            metadata,
            components,
            prepared.prompt_content,
            prepared.file_type,
        )
        extracted = {
            "metadata": metadata,
            "components": components,
            "connections": connections,
            "networkTopology": parsed.get("networkTopology") or {},
            "summary": parsed.get("summary") or "",
        }
        log_event(
            "analysis_stage_completed",
            stage="extraction",
            components=len(components),
            connections=len(connections),
            cloud_providers=metadata.get("cloudProviders"),
        )
        return extracted

    def assess(self, upload: UploadedArtifact, extracted: dict[str, Any]) -> dict[str, Any]:
        checklist_items = self.checklist_service.get_enabled_items()
        prompt = build_analysis_prompt(
            extracted,
            checklist_items,
            component_name=upload.component_name,
            environment=upload.environment,
        )
        raw = self.llm.complete(prompt, purpose="analysis_assessment")
        parsed = extract_json_object(raw)

        assessed = {
            "components": ensure_array(parsed.get("components"), extracted["components"]),
            "connections": ensure_array(parsed.get("connections"), extracted["connections"]),
            "risks": ensure_array(parsed.get("risks"), []),
            "complianceGaps": ensure_array(parsed.get("complianceGaps"), []),
            "costIssues": ensure_array(parsed.get("costIssues"), []),
            "recommendations": ensure_array(parsed.get("recommendations"), []),
            "summary": parsed.get("summary") or extracted["summary"] or "Architecture analysis completed",
            "architectureDescription": (
                parsed.get("architectureDescription") or extracted["summary"] or "Detailed architecture analysis"
            ),
            **extract_scores(parsed),
        }
        log_event(
            "analysis_stage_completed",
            stage="assessment",
            checklist_items=len(checklist_items),
            risks=len(assessed["risks"]),
            recommendations=len(assessed["recommendations"]),
        )
        return assessed

    def _content_hash(self, upload: UploadedArtifact, prepared: PreparedContent) -> str:
        return generate_content_hash(
            prepared.encoded,
            upload.app_id,
            upload.component_name,
            upload.environment,
            upload.version,
        )

    def _from_cache(self, content_hash: str, started: float) -> dict[str, Any] | None:
        if self.cache is None:
            return None
        cached = self.cache.get(content_hash)
        if cached is None:
            return None
        cached.pop("_id", None)
        cached.update(
            {
                "id": unique_time_id(self.analysis_service.collection, "analysis-"),
                "timestamp": utc_iso_now(),
                "processingTime": round(time.perf_counter() - started, 2),
                "cached": True,
            }
        )
        log_event("analysis_cache_hit", content_hash=content_hash[:16], analysis_id=cached["id"])
        return self.analysis_service.save(cached)

    def analyze(self, upload: UploadedArtifact) -> dict[str, Any]:
        started = time.perf_counter()
        prepared = prepare_content(upload)
        content_hash = self._content_hash(upload, prepared)

        hit = self._from_cache(content_hash, started)
        if hit is not None:
            return hit

        log_event(
            "analysis_started",
            file_name=upload.filename,
            file_type=prepared.file_type,
            size=upload.size,
            provider=self.llm.provider,
        )
        extracted = self.extract(upload, prepared)
        assessed = self.assess(upload, extracted)

        analysis: dict[str, Any] = {
            "id": unique_time_id(self.analysis_service.collection, "analysis-"),
            "timestamp": utc_iso_now(),
            "fileName": upload.filename,
            "fileType": prepared.file_type,
            "originalFile": {
                "name": upload.filename,
                "size": upload.size,
                "type": upload.content_type,
                "data": prepared.encoded,
                "mimeType": upload.content_type,
            },
            "appId": upload.app_id,
            "componentName": upload.component_name,
            "description": upload.description,
            "environment": upload.environment,
            "version": upload.version,
            "metadata": extracted["metadata"],
            "components": assessed["components"],
            "connections": assessed["connections"],
            "risks": assessed["risks"],
            "complianceGaps": assessed["complianceGaps"],
            "costIssues": assessed["costIssues"],
            "recommendations": assessed["recommendations"],
            "resiliencyScore": assessed["resiliencyScore"],
            "securityScore": assessed["securityScore"],
            "costEfficiencyScore": assessed["costEfficiencyScore"],
            "complianceScore": assessed["complianceScore"],
            "estimatedSavingsUSD": total_savings(assessed["costIssues"]),
            "summary": assessed["summary"],
            "architectureDescription": assessed["architectureDescription"],
            "processingTime": round(time.perf_counter() - started, 2),
            "llmProvider": self.llm.provider,
            "llmModel": self.llm.model or "unknown",
            "status": "completed",
            "tags": [],
        }
        if prepared.image_optimization is not None:
            analysis["imageOptimization"] = prepared.image_optimization

        saved = self.analysis_service.save(analysis)
        metrics.inc("analyses_completed_total")
        if self.cache is not None:
            try:
                self.cache.put(content_hash, saved)
            except Exception as exc:
                log_event("analysis_cache_write_failed", error=str(exc), analysis_id=saved.get("id"))
        log_event(
            "analysis_completed",
            analysis_id=saved.get("id"),
            processing_time=analysis["processingTime"],
            security_score=analysis["securityScore"],
        )
        return saved


def get_architecture_analyzer() -> ArchitectureAnalyzer:
    return ArchitectureAnalyzer(
        None,
        get_analysis_service(),
        get_checklist_service(),
        get_analysis_cache(),
    )
