import base64

import pytest

from backend.app.analysis.cloud_detection import detect_content_providers
from backend.app.analysis.pipeline import UploadedArtifact, classify_text, extract_scores, prepare_content, total_savings
from backend.app.core.errors import AnalysisError

EXTRACTION = {
    "metadata": {"architectureType": "serverless", "cloudProviders": ["on-premises"], "estimatedComplexity": "low"},
    "components": [
        {"id": "c1", "name": "Checkout API", "type": "compute", "cloudService": "AWS Lambda"},
        {"id": "c2", "name": "Orders", "type": "database", "cloudService": "DynamoDB"},
    ],
    "connections": [{"id": "k1", "source": "c1", "target": "c2", "type": "data_flow"}],
    "summary": "Serverless checkout",
}

ASSESSMENT = {
    "risks": [{"id": "r1", "title": "Public endpoint", "severity": "high"}],
    "complianceGaps": "[]",
    "costIssues": [{"id": "cost1", "estimatedSavings": "$1,200"}, {"id": "cost2", "estimatedSavingsUSD": 300}],
    "recommendations": [{"id": "rec1", "issue": "Strong authentication", "fix": "Enable MFA"}],
    "scores": {"security": 62, "resiliency": "70", "costEfficiency": 81, "compliance": 55},
}


def _upload(data=b'resource "aws_lambda_function" "checkout" {}', content_type="text/plain", **extra):
    fields = {"app_id": "shop", "component_name": "checkout", "environment": "prod", "version": "1.0"}
    fields.update(extra)
    return UploadedArtifact(filename="main.tf", content_type=content_type, data=data, **fields)


def test_classify_text():
    assert classify_text('resource "aws_s3_bucket" "b" {}') == "iac"
    assert classify_text("apiVersion: v1\nkind: Service") == "iac"
    assert classify_text("Users hit the web tier which talks to a database") == "text"


def test_classify_text_matches_markers_case_sensitively():
    assert classify_text("APIVERSION: v1\nKIND: Service") == "text"
    assert classify_text("Resource owners review the Provider contract") == "text"
    assert detect_content_providers("APIVERSION: v1\nKIND: Service") == ["kubernetes"]


def test_prepare_image_content():
    prepared = prepare_content(_upload(data=b"\x89PNG....", content_type="image/png"))
    assert prepared.file_type == "image"
    assert prepared.prompt_content.startswith("Base64 Image Data: ")
    assert prepared.image_optimization["optimized"] is False
    assert base64.b64decode(prepared.encoded) == b"\x89PNG...."


def test_scores_come_from_top_level_or_nested():
    assert extract_scores({"securityScore": 90, "scores": {"security": 10}})["securityScore"] == 90
    nested = extract_scores({"scores": {"compliance": "45"}})
    assert nested["complianceScore"] == 45
    assert nested["resiliencyScore"] == 0


def test_total_savings_sums_numeric_values():
    assert total_savings([{"estimatedSavings": 100}, {"estimatedSavingsUSD": "$50.5"}, "junk"]) == 150.5
    assert total_savings([]) == 0


def test_analyze_runs_both_stages_and_persists(analyzer, llm, checklist_service, analysis_service):
    checklist_service.initialize_defaults()
    llm.push(EXTRACTION, ASSESSMENT)

    result = analyzer.analyze(_upload())

    assert [c["purpose"] for c in llm.calls] == ["analysis_extraction", "analysis_assessment"]
    assert "Strong authentication" in llm.calls[1]["prompt"]
    assert result["id"].startswith("analysis-")
    assert result["_id"]
    assert result["fileType"] == "iac"
    assert result["metadata"]["cloudProviders"] == ["aws"]
    assert result["metadata"]["primaryCloudProvider"] == "aws"
    assert result["components"] == EXTRACTION["components"]
    assert result["complianceGaps"] == []
    assert result["securityScore"] == 62
    assert result["resiliencyScore"] == 70
    assert result["estimatedSavingsUSD"] == 1500
    assert result["summary"] == "Serverless checkout"
    assert result["architectureDescription"] == "Serverless checkout"
    assert result["status"] == "completed"
    assert result["llmProvider"] == "fake"
    assert "imageOptimization" not in result
    assert analysis_service.get(result["id"])["componentName"] == "checkout"


def test_identical_upload_is_served_from_cache(analyzer, llm, analysis_service):
    llm.push(EXTRACTION, ASSESSMENT)
    first = analyzer.analyze(_upload())
    second = analyzer.analyze(_upload())

    assert len(llm.calls) == 2
    assert second["cached"] is True
    assert second["id"] != first["id"]
    assert second["_id"] != first["_id"]
    assert second["securityScore"] == first["securityScore"]
    assert analysis_service.collection.count({}) == 2


def test_different_context_misses_cache(analyzer, llm):
    llm.push(EXTRACTION, ASSESSMENT, EXTRACTION, ASSESSMENT)
    analyzer.analyze(_upload())
    analyzer.analyze(_upload(environment="staging"))
    assert len(llm.calls) == 4


def test_unusable_llm_output_raises(analyzer, llm, analysis_service):
    llm.push("Sorry, I cannot read this file.")
    with pytest.raises(AnalysisError):
        analyzer.analyze(_upload())
    assert analysis_service.collection.count({}) == 0


def test_fallback_summary_when_model_gives_none(analyzer, llm):
    llm.push({"components": [], "connections": []}, {"securityScore": 50})
    result = analyzer.analyze(_upload(data=b"a web tier and a database"))
    assert result["fileType"] == "text"
    assert result["summary"] == "Architecture analysis completed"
    assert result["architectureDescription"] == "Detailed architecture analysis"
