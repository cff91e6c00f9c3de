import pytest

from backend.app.core.errors import NotFoundError, ServiceUnavailableError, ValidationError
from backend.app.services.query_service import QueryService, analysis_context, blueprint_context


def _stored_analysis(analysis_service):
    return analysis_service.save(
        {
            "id": "analysis-42",
            "componentName": "checkout",
            "environment": "prod",
            "components": [{"name": "API", "type": "compute", "cloudProvider": "aws"}],
            "connections": [{"source": "API", "target": "DB", "type": "data_flow"}],
            "securityScore": 65,
            "risks": [{"title": "Public bucket", "severity": "high"}],
        }
    )


def test_analysis_context_lists_sections():
    context = analysis_context(
        {
            "id": "a1",
            "components": [{"name": "API", "type": "compute"}],
            "risks": [],
            "metadata": {"cloudProviders": ["aws", "gcp"]},
        }
    )
    assert "- Analysis ID: a1" in context
    assert "**COMPONENTS (1):**" in context
    assert "Cloud Providers: aws, gcp" in context
    assert "RISKS" not in context


def test_blueprint_context_includes_score_and_analysis():
    context = blueprint_context(
        {"name": "Shop", "tags": []},
        {"scores": {"security": 80}, "insights": ["a", "b", "c", "d"]},
        score=0.873,
    )
    assert context.startswith("Blueprint: Shop (Similarity: 87.3%)")
    assert "- Tags: None" in context
    assert "  * Security: 80/100" in context
    assert "Key Insights: a, b, c" in context


def test_query_analysis_returns_html(query_service, analysis_service, llm):
    _stored_analysis(analysis_service)
    llm.push("**Public bucket** is the top risk")

    result = query_service.query_analysis("analysis-42", "  What is the top risk? ")

    assert result["query"] == "What is the top risk?"
    assert result["answer"].startswith('<p class="markdown-paragraph"><strong class="markdown-bold">')
    assert result["componentName"] == "checkout"
    call = llm.calls[0]
    assert call["purpose"] == "analysis_query"
    assert call["temperature"] == 0.7
    assert "Public bucket" in call["prompt"]


def test_query_requires_text(query_service, analysis_service):
    _stored_analysis(analysis_service)
    for bad in ("", "   ", None, 12):
        with pytest.raises(ValidationError):
            query_service.query_analysis("analysis-42", bad)
    with pytest.raises(NotFoundError):
        query_service.query_analysis("analysis-missing", "why?")


def test_query_blueprint(query_service, make_blueprint, llm):
    bp = make_blueprint()
    llm.push("It uses Lambda.")
    result = query_service.query_blueprint(bp["id"], "What compute does it use?")
    assert result["blueprintName"] == "Serverless Shop"
    assert result["hasAnalysis"] is False
    assert llm.calls[0]["purpose"] == "blueprint_query"

    with pytest.raises(NotFoundError):
        query_service.query_blueprint("missing", "anything")


def test_query_blueprints_uses_similarity(query_service, make_blueprint, llm):
    bp = make_blueprint()
    llm.push("Serverless Shop fits.")

    result = query_service.query_blueprints(bp["description"], limit=3, threshold=0.1)

    assert result["totalResults"] == 1
    assert result["relevantBlueprints"][0]["id"] == bp["id"]
    assert "Serverless Shop (Similarity:" in llm.calls[0]["prompt"]
    assert llm.calls[0]["purpose"] == "blueprints_query"


def test_query_blueprints_without_embeddings(llm, analysis_service, doc_store):
    service = QueryService(llm, analysis_service, doc_store.collection("blueprints"), doc_store.collection("x"))
    with pytest.raises(ServiceUnavailableError):
        service.query_blueprints("anything")
