"""
Natural-language questions over stored analyses and blueprints.
"""

from __future__ import annotations

from typing import Any

from backend.app.analysis.prompts import build_analysis_query_prompt, build_blueprint_query_prompt
from backend.app.core.db.documents import DocumentCollection, get_document_store
from backend.app.core.errors import NotFoundError, ServiceUnavailableError, ValidationError
from backend.app.core.llm.client import LLMClient, get_llm_client
from backend.app.observability.logging import log_event
from backend.app.services.analysis_service import AnalysisService, get_analysis_service
from backend.app.services.blueprint_service import BLUEPRINT_ANALYSES_COLLECTION, BLUEPRINTS_COLLECTION
from backend.app.services.similarity_service import SimilarityService, get_similarity_service
from backend.app.utils.dates import utc_iso_now
from backend.app.utils.markdown import markdown_to_html

QUERY_TEMPERATURE = 0.7
QUERY_MAX_TOKENS = 2000


def _v(value: Any, default: str = "Unknown") -> str:
    if value is None or value == "" or value == []:
        return default
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _numbered(title: str, rows: list[Any], render) -> str:
    items = [r for r in rows or [] if isinstance(r, dict)]
    if not items:
        return ""
    body = "\n\n".join(f"{i}. {render(item)}" for i, item in enumerate(items, start=1))
    return f"**{title} ({len(items)}):**\n{body}"


def _optional(label: str, value: Any) -> str:
    if value is None or value == "" or value == []:
        return ""
    return f"\n   - {label}: {_v(value)}"


def analysis_context(analysis: dict[str, Any]) -> str:
    metadata = analysis.get("metadata") or {}
    parts = [
        "**ARCHITECTURE ANALYSIS INFORMATION:**\n"
        f"- Analysis ID: {analysis.get('id') or analysis.get('_id')}\n"
        f"- Component Name: {_v(analysis.get('componentName'))}\n"
        f"- App ID: {_v(analysis.get('appId'))}\n"
        f"- Description: {_v(analysis.get('description'), 'No description')}\n"
        f"- Environment: {_v(analysis.get('environment'))}\n"
        f"- Version: {_v(analysis.get('version'))}\n"
        f"- Timestamp: {_v(analysis.get('timestamp'))}"
    ]
    if metadata:
        parts.append(
            "**METADATA:**\n"
            f"- Architecture Type: {_v(metadata.get('architectureType'))}\n"
            f"- Cloud Providers: {_v(metadata.get('cloudProviders'))}\n"
            f"- Hybrid Cloud Model: {_v(metadata.get('hybridCloudModel'))}\n"
            f"- Primary Cloud Provider: {_v(metadata.get('primaryCloudProvider'))}\n"
            f"- Estimated Complexity: {_v(metadata.get('estimatedComplexity'))}\n"
            f"- Primary Purpose: {_v(metadata.get('primaryPurpose'))}\n"
            f"- Environment Type: {_v(metadata.get('environmentType'))}\n"
            f"- Deployment Model: {_v(metadata.get('deploymentModel'))}"
        )
    parts.append(
        _numbered(
            "COMPONENTS",
            analysis.get("components"),
            lambda c: (
                f"{c.get('name') or c.get('id') or 'Component'} ({c.get('type') or 'unknown'})"
                f"\n   - Cloud Provider: {_v(c.get('cloudProvider'))}"
                f"\n   - Cloud Service: {_v(c.get('cloudService'))}"
                f"\n   - Region: {_v(c.get('cloudRegion'))}"
                + _optional("Description", c.get("description"))
            ),
        )
    )
    parts.append(
        _numbered(
            "CONNECTIONS",
            analysis.get("connections"),
            lambda c: (
                f"{_v(c.get('source'))} -> {_v(c.get('target'))}"
                f"\n   - Type: {_v(c.get('type'))}"
                f"\n   - Protocol: {_v(c.get('protocol'))}"
                + _optional("Description", c.get("description"))
            ),
        )
    )
    parts.append(
        "**ANALYSIS SCORES (0-100):**\n"
        f"- Security Score: {analysis.get('securityScore') or 0}\n"
        f"- Resiliency Score: {analysis.get('resiliencyScore') or 0}\n"
        f"- Cost Efficiency Score: {analysis.get('costEfficiencyScore') or 0}\n"
        f"- Compliance Score: {analysis.get('complianceScore') or 0}"
    )
    parts.append(
        _numbered(
            "RISKS",
            analysis.get("risks"),
            lambda r: (
                f"[{_v(r.get('severity'))} severity] {r.get('title') or 'Risk'}"
                f"\n   - Category: {_v(r.get('category'))}"
                f"\n   - Impact: {_v(r.get('impact'))}"
                + _optional("Description", r.get("description"))
                + _optional("Recommendation", r.get("recommendation"))
                + _optional("Affected Components", r.get("components"))
            ),
        )
    )
    parts.append(
        _numbered(
            "COMPLIANCE GAPS",
            analysis.get("complianceGaps"),
            lambda g: (
                f"{g.get('framework') or 'Unknown Framework'}"
                f"\n   - Requirement: {_v(g.get('requirement'))}"
                f"\n   - Severity: {_v(g.get('severity'))}"
                + _optional("Description", g.get("description"))
                + _optional("Remediation", g.get("remediation"))
            ),
        )
    )
    parts.append(
        _numbered(
            "COST ISSUES",
            analysis.get("costIssues"),
            lambda i: (
                f"{i.get('title') or 'Cost Issue'}"
                f"\n   - Severity: {_v(i.get('severity'))}"
                f"\n   - Estimated Savings: ${i.get('estimatedSavingsUSD') or i.get('estimatedSavings') or 0}"
                + _optional("Description", i.get("description"))
                + _optional("Recommendation", i.get("recommendation"))
            ),
        )
    )
    parts.append(
        _numbered(
            "RECOMMENDATIONS",
            analysis.get("recommendations"),
            lambda r: (
                f"[Priority: {r.get('priority') or 'medium'}] {r.get('issue') or 'Recommendation'}"
                f"\n   - Category: {_v(r.get('category'))}"
                f"\n   - Impact: {_v(r.get('impact'))}"
                f"\n   - Effort: {_v(r.get('effort'))}"
                + _optional("Fix", r.get("fix"))
            ),
        )
    )
    return "\n\n".join(p for p in parts if p)


def blueprint_context(blueprint: dict[str, Any], analysis: dict[str, Any] | None, score: float | None = None) -> str:
    metadata = blueprint.get("metadata") or {}
    header = f"Blueprint: {blueprint.get('name')}"
    if score is not None:
        header += f" (Similarity: {score * 100:.1f}%)"
    lines = [
        header,
        f"- Description: {_v(blueprint.get('description'))}",
        f"- Type: {_v(blueprint.get('type'))}",
        f"- Category: {_v(blueprint.get('category'))}",
        f"- Cloud Providers: {_v(blueprint.get('cloudProviders'))}",
        f"- Complexity: {_v(blueprint.get('complexity'))}",
        f"- Tags: {_v(blueprint.get('tags'), 'None')}",
        f"- Components: {metadata.get('components') or 0}",
        f"- Connections: {metadata.get('connections') or 0}",
    ]
    if analysis:
        scores = analysis.get("scores") or {}
        lines.append("- Analysis Scores:")
        for key, label in (
            ("security", "Security"),
            ("resiliency", "Resiliency"),
            ("costEfficiency", "Cost Efficiency"),
            ("compliance", "Compliance"),
            ("scalability", "Scalability"),
            ("maintainability", "Maintainability"),
        ):
            lines.append(f"  * {label}: {scores.get(key) or 0}/100")
        lines.append(f"- Architecture Patterns: {_v(analysis.get('architecturePatterns'), 'None')}")
        lines.append(f"- Technology Stack: {_v(analysis.get('technologyStack'), 'None')}")
        lines.append(f"- Key Insights: {_v((analysis.get('insights') or [])[:3], 'None')}")
        components = [c for c in analysis.get("components") or [] if isinstance(c, dict)]
        if components:
            lines.append(
                "- Components: " + "; ".join(f"{c.get('name')} ({c.get('type')})" for c in components)
            )
    return "\n".join(lines)


def _require_question(question: Any) -> str:
    if not isinstance(question, str) or not question.strip():
        raise ValidationError("Query is required and must be a string")
    return question.strip()


class QueryService:
    def __init__(
        self,
        llm: LLMClient,
        analysis_service: AnalysisService,
        blueprints: DocumentCollection,
        blueprint_analyses: DocumentCollection,
        similarity: SimilarityService | None = None,
    ):
        self.llm = llm
        self.analysis_service = analysis_service
        self.blueprints = blueprints
        self.blueprint_analyses = blueprint_analyses
        self.similarity = similarity

    def _answer(self, prompt: str, purpose: str) -> str:
        raw = self.llm.complete(
            prompt,
            temperature=QUERY_TEMPERATURE,
            max_tokens=QUERY_MAX_TOKENS,
            purpose=purpose,
        )
        return markdown_to_html(raw)

    def query_analysis(self, analysis_id: str, question: Any) -> dict[str, Any]:
        question = _require_question(question)
        analysis = self.analysis_service.require(analysis_id)
        prompt = build_analysis_query_prompt(question, analysis_context(analysis))
        answer = self._answer(prompt, "analysis_query")
        log_event("analysis_query_answered", analysis_id=analysis.get("id"), question_chars=len(question))
        return {
            "success": True,
            "query": question,
            "answer": answer,
            "analysisId": analysis.get("id") or analysis.get("_id"),
            "componentName": analysis.get("componentName"),
            "timestamp": utc_iso_now(),
        }

    def query_blueprint(self, blueprint_id: str, question: Any) -> dict[str, Any]:
        question = _require_question(question)
        blueprint = self.blueprints.find_one({"id": blueprint_id})
        if blueprint is None:
            raise NotFoundError("Blueprint not found")
        analysis = self.blueprint_analyses.find_one({"blueprintId": blueprint_id})
        prompt = build_blueprint_query_prompt(question, blueprint_context(blueprint, analysis))
        answer = self._answer(prompt, "blueprint_query")
        log_event("blueprint_query_answered", blueprint_id=blueprint_id, has_analysis=analysis is not None)
        return {
            "success": True,
            "query": question,
            "answer": answer,
            "blueprintId": blueprint_id,
            "blueprintName": blueprint.get("name"),
            "hasAnalysis": analysis is not None,
            "timestamp": utc_iso_now(),
        }

    def query_blueprints(self, question: Any, limit: int = 5, threshold: float = 0.7) -> dict[str, Any]:
        question = _require_question(question)
        if self.similarity is None or not self.similarity.embeddings.is_available():
            raise ServiceUnavailableError("Embedding service not available")
        results = self.similarity.search_by_text(question, limit=limit, threshold=threshold)

        ids = [r["blueprint"]["id"] for r in results]
        blueprints = {b["id"]: b for b in self.blueprints.find({"id": {"$in": ids}}, exclude=["originalFile.data"])}
        analyses = {a["blueprintId"]: a for a in self.blueprint_analyses.find({"blueprintId": {"$in": ids}})}

        relevant = []
        contexts = []
        for result in results:
            bp_id = result["blueprint"]["id"]
            blueprint = blueprints.get(bp_id)
            if blueprint is None:
                continue
            analysis = analyses.get(bp_id)
            contexts.append(f"{len(contexts) + 1}. " + blueprint_context(blueprint, analysis, result["score"]))
            relevant.append(
                {
                    "id": bp_id,
                    "name": blueprint.get("name"),
                    "description": blueprint.get("description"),
                    "type": blueprint.get("type"),
                    "category": blueprint.get("category"),
                    "cloudProviders": blueprint.get("cloudProviders") or [],
                    "complexity": blueprint.get("complexity"),
                    "tags": blueprint.get("tags") or [],
                    "similarityScore": result["score"],
                    "hasAnalysis": analysis is not None,
                    "analysisScores": (analysis or {}).get("scores"),
                }
            )

        prompt = build_blueprint_query_prompt(question, "\n\n".join(contexts))
        answer = self._answer(prompt, "blueprints_query")
        log_event("blueprints_query_answered", results=len(relevant), limit=limit, threshold=threshold)
        return {
            "success": True,
            "query": question,
            "answer": answer,
            "relevantBlueprints": relevant,
            "totalResults": len(relevant),
            "timestamp": utc_iso_now(),
        }


def get_query_service() -> QueryService:
    store = get_document_store()
    return QueryService(
        get_llm_client(),
        get_analysis_service(),
        store.collection(BLUEPRINTS_COLLECTION),
        store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        get_similarity_service(),
    )
