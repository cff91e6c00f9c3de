import base64

import pytest

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.services.blueprint_service import (
    blueprint_type_for,
    cloud_providers_for,
    complexity_for,
    parse_list,
)


def test_helpers():
    assert parse_list('["a", " b "]') == ["a", "b"]
    assert parse_list("a, b,,c") == ["a", "b", "c"]
    assert parse_list(None) == []
    assert complexity_for(16) == "high"
    assert complexity_for(9) == "medium"
    assert complexity_for(8) == "low"
    assert blueprint_type_for("iac") == "iac"
    assert blueprint_type_for("text") == "template"
    assert blueprint_type_for("image") == "architecture"
    assert cloud_providers_for(
        [{"cloudProvider": "aws"}, {"cloudProvider": "on-premises"}, {"cloudProvider": "aws"}, {"cloudProvider": "gcp"}]
    ) == ["aws", "gcp"]


def test_create_stores_file_and_embedding(make_blueprint, vector_store):
    bp = make_blueprint()
    assert bp["version"] == "1.0.0"
    assert bp["downloadCount"] == 0
    assert bp["rating"] == 0
    assert bp["tags"] == ["serverless", "aws"]
    assert base64.b64decode(bp["originalFile"]["data"]) == b"lambda -> dynamodb"
    assert bp["hasEmbedding"] is True
    assert bp["embeddingId"] == f"blueprint_{bp['id']}"
    assert vector_store.get(bp["embeddingId"]).payload["type"] == "blueprint"


def test_create_requires_fields_and_file(blueprint_service):
    with pytest.raises(ValidationError) as exc:
        blueprint_service.create({"name": "x"}, file_name=None, content=None)
    assert "file" in exc.value.message
    with pytest.raises(ValidationError):
        blueprint_service.create(
            {"name": "x", "description": "y", "type": "diagram", "category": "Other"},
            file_name="a.txt",
            content=b"x",
        )


def test_query_filters_and_sorting(make_blueprint, blueprint_service):
    make_blueprint(name="Alpha", tags="k8s")
    make_blueprint(name="Beta", description="Data lake on GCP", category="Data Analytics", cloudProviders="gcp")
    make_blueprint(name="Gamma", isPublic=True)

    result = blueprint_service.query(search="data LAKE")
    assert [b["name"] for b in result["blueprints"]] == ["Beta"]
    assert "originalFile" not in result["blueprints"][0] or "data" not in result["blueprints"][0]["originalFile"]

    assert [b["name"] for b in blueprint_service.query(cloud_provider="gcp")["blueprints"]] == ["Beta"]
    assert [b["name"] for b in blueprint_service.query(tags=["k8s", "none"])["blueprints"]] == ["Alpha"]
    assert [b["name"] for b in blueprint_service.query(is_public=True)["blueprints"]] == ["Gamma"]

    by_name = blueprint_service.query(sort_by="name", sort_order="asc", limit=2)
    assert [b["name"] for b in by_name["blueprints"]] == ["Alpha", "Beta"]
    assert by_name["pagination"]["totalPages"] == 2


def test_search_is_regex_escaped(make_blueprint, blueprint_service):
    make_blueprint(name="C++ services")
    assert blueprint_service.query(search="c++")["pagination"]["totalCount"] == 1


def test_rate_keeps_running_average(make_blueprint, blueprint_service):
    bp = make_blueprint()
    blueprint_service.rate(bp["id"], 5)
    blueprint_service.rate(bp["id"], 4)
    result = blueprint_service.rate(bp["id"], 4)
    assert result["rating"] == 4.3
    assert result["ratingCount"] == 3

    for bad in (0, 6, "five", None):
        with pytest.raises(ValidationError):
            blueprint_service.rate(bp["id"], bad)


def test_update_whitelists_fields_and_reembeds(make_blueprint, blueprint_service, vector_store):
    bp = make_blueprint()
    updated = blueprint_service.update(bp["id"], {"description": "Now on Azure", "downloadCount": 999})
    assert updated["description"] == "Now on Azure"
    assert updated["downloadCount"] == 0
    assert "Now on Azure" in vector_store.get(f"blueprint_{bp['id']}").payload["content"]

    with pytest.raises(NotFoundError):
        blueprint_service.update("missing", {"name": "x"})


def test_download_increments_and_get_file_does_not(make_blueprint, blueprint_service):
    bp = make_blueprint()
    content, mime_type, name = blueprint_service.download(bp["id"])
    assert (content, mime_type, name) == (b"lambda -> dynamodb", "text/plain", "diagram.txt")
    blueprint_service.get_file(bp["id"])
    assert blueprint_service.get(bp["id"])["downloadCount"] == 1


def test_delete_removes_analysis_and_vectors(make_blueprint, blueprint_service, vector_store):
    bp = make_blueprint()
    blueprint_service.analyses.insert_one({"blueprintId": bp["id"], "analysisId": "analysis_1"})
    assert blueprint_service.delete(bp["id"]) is True
    assert blueprint_service.get(bp["id"]) is None
    assert blueprint_service.analyses.count({"blueprintId": bp["id"]}) == 0
    assert vector_store.get(f"blueprint_{bp['id']}") is None
    with pytest.raises(NotFoundError):
        blueprint_service.delete(bp["id"])


def test_analytics(make_blueprint, blueprint_service):
    first = make_blueprint(name="One")
    make_blueprint(name="Two", isPublic=True, cloudProviders="aws,gcp")
    blueprint_service.rate(first["id"], 5)
    blueprint_service.download(first["id"])

    stats = blueprint_service.analytics()
    assert stats["totalBlueprints"] == 2
    assert stats["publicBlueprints"] == 1
    assert stats["totalDownloads"] == 1
    assert stats["averageRating"] == 5
    assert {"_id": "aws", "count": 2} in stats["byCloudProvider"]
    assert stats["topDownloaded"][0]["name"] == "One"


def test_convert_from_analysis(blueprint_service, analysis_service, vector_store):
    analysis = analysis_service.save(
        {
            "id": "analysis-1",
            "fileName": "main.tf",
            "fileType": "iac",
            "environment": "prod",
            "originalFile": {"name": "main.tf", "size": 5, "type": "text/plain", "data": "aGVsbG8=", "mimeType": "text/plain"},
            "components": [
                {"name": "API", "type": "compute", "cloudProvider": "aws"},
                {"name": "Ledger", "type": "database", "cloudProvider": "on-premises"},
            ],
            "connections": [{"source": "API", "target": "Ledger", "type": "data_flow"}],
            "securityScore": 70,
            "recommendations": [{"issue": "MFA", "fix": "Enable MFA", "priority": "high"}],
        }
    )

    with pytest.raises(ValidationError):
        blueprint_service.convert_from_analysis(analysis["id"], {"name": "x"})
    with pytest.raises(NotFoundError):
        blueprint_service.convert_from_analysis("analysis-missing", {"name": "x", "description": "y", "category": "Other"})

    bp = blueprint_service.convert_from_analysis(
        analysis["id"], {"name": "Payments", "description": "Payments platform", "category": "E-commerce"}
    )
    assert bp["type"] == "iac"
    assert bp["complexity"] == "low"
    assert bp["cloudProviders"] == ["aws"]
    assert bp["metadata"]["extractedComponents"][0]["name"] == "API"
    assert bp["hasAnalysis"] is True
    assert bp["analysisScores"]["security"] == 70
    assert bp["analysisScores"]["scalability"] == 75
    assert bp["originalFile"]["data"] == "aGVsbG8="

    stored = blueprint_service.analyses.find_one({"blueprintId": bp["id"]})
    assert stored["recommendations"][0]["recommendation"] == "Enable MFA"
    assert vector_store.get(f"blueprint_analysis_{stored['analysisId']}") is not None
    assert vector_store.get(f"blueprint_{bp['id']}") is not None
