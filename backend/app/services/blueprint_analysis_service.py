"""
Component-centric LLM review of stored blueprints.
"""

from __future__ import annotations

from typing import Any

from backend.app.analysis.json_recovery import coerce_score, ensure_array, extract_json_object
from backend.app.analysis.prompts import build_blueprint_analysis_prompt
from backend.app.core.db.documents import DocumentCollection, get_document_store
from backend.app.core.errors import NotFoundError
from backend.app.core.llm.client import LLMClient, get_llm_client
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics
from backend.app.services.blueprint_service import (
    BLUEPRINT_ANALYSES_COLLECTION,
    BLUEPRINTS_COLLECTION,
)
from backend.app.services.embedding_service import EmbeddingService, get_embedding_service
from backend.app.utils.dates import epoch_ms, utc_iso_now

SCORE_KEYS = ("security", "resiliency", "costEfficiency", "compliance", "scalability", "maintainability")
DEFAULT_COMPLEXITY = {
    "totalComponents": 0,
    "criticalComponents": 0,
    "highCouplingComponents": 0,
    "scalabilityBottlenecks": [],
    "integrationPoints": 0,
}


def _join(values: Any, sep: str = ", ") -> str:
    return sep.join(str(v) for v in values or [])


def analysis_embedding_text(analysis: dict[str, Any], blueprint: dict[str, Any]) -> str:
    components = "; ".join(
        f"{c.get('name')} ({c.get('type')}): {c.get('technology')} - {c.get('criticality')} criticality, "
        f"{c.get('scalability')} scalability, {c.get('securityLevel')} security"
        for c in analysis["components"]
        if isinstance(c, dict)
    )
    relationships = "; ".join(
        f"{r.get('source')} {r.get('relationship')} {r.get('target')}"
        for r in analysis["componentRelationships"]
        if isinstance(r, dict)
    )
    recommendations = "; ".join(
        f"{r.get('component') or 'General'}: {r.get('issue', '')} - {r.get('recommendation', '')}"
        for r in analysis["recommendations"]
        if isinstance(r, dict)
    )
    scores = analysis["scores"]
    return "\n".join(
        [
            f"Blueprint: {blueprint.get('name')} ({blueprint.get('type')})",
            f"Description: {blueprint.get('description')}",
            f"Category: {blueprint.get('category')}",
            f"Complexity: {blueprint.get('complexity')}",
            f"Cloud Providers: {_join(blueprint.get('cloudProviders'))}",
            "",
            f"Components: {components}",
            f"Relationships: {relationships}",
            f"Architecture Patterns: {_join(analysis['architecturePatterns'])}",
            f"Technology Stack: {_join(analysis['technologyStack'])}",
            f"Insights: {_join(analysis['insights'], '; ')}",
            f"Recommendations: {recommendations}",
            "",
            "Scores: " + ", ".join(f"{k} {scores.get(k, 0)}" for k in SCORE_KEYS),
        ]
    )


def parse_blueprint_analysis(raw: str, blueprint_id: str, analysis_id: str) -> dict[str, Any]:
    parsed = extract_json_object(raw)
    scores = parsed.get("scores") if isinstance(parsed.get("scores"), dict) else {}
    complexity = parsed.get("componentComplexity")
    now = utc_iso_now()
    return {
        "blueprintId": blueprint_id,
        "analysisId": analysis_id,
        "components": ensure_array(parsed.get("components"), []),
        "componentRelationships": ensure_array(parsed.get("componentRelationships"), []),
        "architecturePatterns": ensure_array(parsed.get("architecturePatterns"), []),
        "technologyStack": ensure_array(parsed.get("technologyStack"), []),
        "componentComplexity": complexity if isinstance(complexity, dict) else dict(DEFAULT_COMPLEXITY),
        "scores": {k: coerce_score(scores.get(k)) for k in SCORE_KEYS},
        "recommendations": ensure_array(parsed.get("recommendations"), []),
        "insights": ensure_array(parsed.get("insights"), []),
        "bestPractices": ensure_array(parsed.get("bestPractices"), []),
        "industryStandards": ensure_array(parsed.get("industryStandards"), []),
        "createdAt": now,
        "updatedAt": now,
    }


def calculate_component_similarity(
    components1: list[dict[str, Any]],
    components2: list[dict[str, Any]],
) -> dict[str, Any]:
    exact = technology = complexity = 0
    matches = []
    for c1 in components1:
        for c2 in components2:
            if c1.get("type") == c2.get("type"):
                exact += 1
                matches.append(
                    {
                        "component": c1.get("name"),
                        "matchType": "exact",
                        "confidence": 0.9,
                        "sourceComponent": c1.get("name"),
                        "targetComponent": c2.get("name"),
                    }
                )
            if c1.get("technology") == c2.get("technology"):
                technology += 1
            if c1.get("criticality") == c2.get("criticality"):
                complexity += 1

    comparisons = len(components1) * len(components2)
    overall = (exact * 0.4 + technology * 0.3 + complexity * 0.3) / comparisons if comparisons else 0.0
    known = {c.get("type") for c in components1}
    missing: list[Any] = []
    for c in components2:
        if c.get("type") not in known and c.get("type") not in missing:
            missing.append(c.get("type"))
    return {
        "exactMatches": exact,
        "technologyMatches": technology,
        "complexityMatches": complexity,
        "patternMatches": 0,
        "overallSimilarity": overall,
        "componentMatches": matches,
        "recommendedComponents": missing,
    }


class BlueprintAnalysisService:
    def __init__(
        self,
        llm: LLMClient,
        blueprints: DocumentCollection,
        analyses: DocumentCollection,
        embeddings: EmbeddingService | None = None,
    ):
        self.llm = llm
        self.blueprints = blueprints
        self.analyses = analyses
        self.embeddings = embeddings

    def get_analysis(self, blueprint_id: str) -> dict[str, Any] | None:
        return self.analyses.find_one({"blueprintId": blueprint_id})

    def analyze_blueprint(self, blueprint_id: str) -> dict[str, Any]:
        blueprint = self.blueprints.find_one({"id": blueprint_id})
        if blueprint is None:
            raise NotFoundError("Blueprint not found")
        if not (blueprint.get("originalFile") or {}).get("data"):
            raise NotFoundError("Blueprint file not available")

        metadata = blueprint.get("metadata") or {}
        components = ensure_array(metadata.get("extractedComponents"), [])
        connections = ensure_array(metadata.get("extractedConnections"), [])
        prompt = build_blueprint_analysis_prompt(blueprint, components, connections)
        raw = self.llm.complete(prompt, temperature=0.3, max_tokens=4000, purpose="blueprint_analysis")

        previous = self.analyses.find_one({"blueprintId": blueprint_id}) or {}
        previous_id = previous.get("analysisId") or blueprint.get("lastAnalysisId")
        analysis_id = f"analysis_{epoch_ms()}"
        parsed = parse_blueprint_analysis(raw, blueprint_id, analysis_id)
        stored = self.analyses.update_one({"blueprintId": blueprint_id}, parsed, upsert=True)
        if previous_id and previous_id != analysis_id:
            self._drop_embedding(previous_id)
        self._store_embedding(stored, blueprint)

        self.blueprints.update_one(
            {"id": blueprint_id},
            {
                "hasAnalysis": True,
                "lastAnalysisId": analysis_id,
                "lastAnalysisDate": utc_iso_now(),
                "analysisScores": stored["scores"],
                "componentCount": len(stored["components"]),
                "architecturePatterns": stored["architecturePatterns"],
                "technologyStack": stored["technologyStack"],
            },
        )
        metrics.inc("blueprint_analyses_total")
        log_event(
            "blueprint_analysis_completed",
            blueprint_id=blueprint_id,
            analysis_id=analysis_id,
            components=len(stored["components"]),
        )
        return stored

    def _drop_embedding(self, analysis_id: str):
        if self.embeddings is None or not self.embeddings.is_available():
            return
        point_id = f"analysis_{analysis_id}"
        try:
            self.embeddings.delete_embedding(point_id)
        except Exception as exc:
            log_event("embedding_delete_failed", vector_id=point_id, error=str(exc))

    def _store_embedding(self, analysis: dict[str, Any], blueprint: dict[str, Any]):
        if self.embeddings is None or not self.embeddings.is_available():
            return
        point_id = f"analysis_{analysis['analysisId']}"
        components = [c for c in analysis["components"] if isinstance(c, dict)]
        try:
            vector = self.embeddings.embed_text(analysis_embedding_text(analysis, blueprint))
            self.embeddings.store_analysis_embedding(
                point_id,
                vector,
                {
                    "type": "blueprint_analysis",
                    "blueprintId": blueprint["id"],
                    "blueprintName": blueprint.get("name"),
                    "analysisId": analysis["analysisId"],
                    "componentCount": len(analysis["components"]),
                    "architecturePatterns": analysis["architecturePatterns"],
                    "technologyStack": analysis["technologyStack"],
                    "scores": analysis["scores"],
                    "createdAt": analysis["createdAt"],
                    "componentTypes": [c.get("type") for c in components],
                    "componentTechnologies": [c.get("technology") for c in components],
                    "criticalComponents": [c.get("name") for c in components if c.get("criticality") == "high"],
                },
            )
        except Exception as exc:
            log_event("embedding_store_failed", vector_id=point_id, error=str(exc))


def get_blueprint_analysis_service() -> BlueprintAnalysisService:
    store = get_document_store()
    return BlueprintAnalysisService(
        get_llm_client(),
        store.collection(BLUEPRINTS_COLLECTION),
        store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        get_embedding_service(),
    )
