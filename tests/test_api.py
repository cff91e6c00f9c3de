from backend.app.analysis.pipeline import ArchitectureAnalyzer, get_architecture_analyzer
from backend.app.api.analyses import content_disposition
from backend.app.core.llm.client import LLMError
from backend.main import app

EXTRACTION = {
    "metadata": {"architectureType": "microservices", "cloudProviders": ["gcp"]},
    "components": [{"id": "c1", "name": "Gateway", "type": "network", "cloudService": "Cloud Run", "cloudProvider": "gcp"}],
    "connections": [],
    "summary": "Single gateway",
}

ASSESSMENT = {
    "risks": [],
    "complianceGaps": [],
    "costIssues": [],
    "recommendations": [{"id": "rec1", "issue": "Logging", "fix": "Enable audit logs"}],
    "scores": {"security": 80, "resiliency": 60, "costEfficiency": 70, "compliance": 90},
}


def _upload_blueprint(client, **fields):
    data = {
        "name": "Data Lake",
        "description": "Batch analytics on GCP",
        "type": "architecture",
        "category": "Data Analytics",
        "tags": "gcp,bigquery",
        "cloudProviders": "gcp",
    }
    data.update(fields)
    return client.post(
        "/api/blueprints",
        data=data,
        files={"file": ("lake.txt", b"gcs -> bigquery", "text/plain")},
    )


def test_health_and_metrics(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["vector_store_type"] == "faiss"

    metrics = client.get("/metrics")
    assert metrics.status_code == 200


def test_analyze_requires_file(client):
    response = client.post("/api/analyze", data={"appId": "shop"})
    assert response.status_code == 400
    assert response.json() == {"error": "No file provided"}

    empty = client.post("/api/analyze", files={"file": ("main.tf", b"", "text/plain")})
    assert empty.status_code == 400


def test_analyze_flow(client, llm):
    llm.push(EXTRACTION, ASSESSMENT)
    response = client.post(
        "/api/analyze",
        data={"appId": "lake", "environment": "prod"},
        files={"file": ("notes.txt", b"Users call the gateway", "text/plain")},
    )
    assert response.status_code == 200
    analysis = response.json()
    assert analysis["securityScore"] == 80
    assert analysis["metadata"]["cloudProviders"] == ["gcp"]

    listed = client.get("/api/analyses", params={"environment": "prod"}).json()
    assert listed["pagination"]["totalCount"] == 1

    fetched = client.get(f"/api/analyses/{analysis['id']}")
    assert fetched.json()["appId"] == "lake"

    file_response = client.get(f"/api/analysis/{analysis['id']}/file")
    assert file_response.content == b"Users call the gateway"
    assert file_response.headers["content-disposition"] == 'inline; filename="notes.txt"'

    llm.push("The gateway is the only component.")
    answer = client.post(f"/api/analysis/{analysis['id']}/query", json={"query": "What is there?"})
    assert answer.status_code == 200
    assert "markdown-paragraph" in answer.json()["answer"]

    converted = client.post(
        f"/api/analysis/{analysis['id']}/convert-to-blueprint",
        json={"name": "Gateway", "description": "Gateway only", "category": "Other"},
    )
    assert converted.status_code == 200
    assert converted.json()["blueprint"]["cloudProviders"] == ["gcp"]

    assert client.delete(f"/api/analyses/{analysis['id']}").status_code == 200
    assert client.delete(f"/api/analyses/{analysis['id']}").status_code == 404


def test_unknown_ids_return_404(client):
    assert client.get("/api/analyses/analysis-0").status_code == 404
    assert client.get("/api/blueprints/nope").status_code == 404
    assert client.get("/api/blueprints/nope/analyze").status_code == 404
    assert client.post("/api/analysis/analysis-0/query", json={"query": "hi"}).status_code == 404


def test_query_without_text_is_rejected(client):
    response = client.post("/api/blueprints/query", json={"query": ""})
    assert response.status_code == 400
    assert response.json()["error"] == "Query is required and must be a string"


def test_blueprint_upload_list_rate_and_download(client):
    created = _upload_blueprint(client)
    assert created.status_code == 200
    blueprint = created.json()["blueprint"]
    assert "originalFile" not in blueprint
    assert blueprint["tags"] == ["gcp", "bigquery"]

    listed = client.get("/api/blueprints", params={"search": "analytics"}).json()
    assert [b["id"] for b in listed["blueprints"]] == [blueprint["id"]]

    assert client.post(f"/api/blueprints/{blueprint['id']}/rate", json={"rating": 9}).status_code == 400
    rated = client.post(f"/api/blueprints/{blueprint['id']}/rate", json={"rating": 4})
    assert rated.json()["rating"] == 4

    download = client.get(f"/api/blueprints/{blueprint['id']}/download")
    assert download.content == b"gcs -> bigquery"
    assert download.headers["content-disposition"].startswith("attachment;")
    assert client.get(f"/api/blueprints/{blueprint['id']}").json()["downloadCount"] == 1


def test_blueprint_upload_without_file(client):
    response = client.post("/api/blueprints", data={"name": "x", "description": "y", "type": "architecture"})
    assert response.status_code == 400


def test_blueprint_similarity_routes(client):
    first = _upload_blueprint(client).json()["blueprint"]
    _upload_blueprint(client, name="Data Lakehouse").json()

    by_query = client.get("/api/blueprints/similarity", params={"query": "Batch analytics on GCP", "threshold": 0.1})
    assert by_query.status_code == 200
    assert by_query.json()["total"] >= 1

    assert client.get("/api/blueprints/similarity").status_code == 400

    detail = client.get(f"/api/blueprints/{first['id']}/similarity")
    assert detail.status_code == 200
    assert detail.json()["stats"]["totalSimilar"] == len(detail.json()["similarBlueprints"])


def test_blueprint_analyze_route(client, llm):
    blueprint = _upload_blueprint(client).json()["blueprint"]
    llm.push({"components": [{"name": "Lake", "type": "storage", "criticality": "high"}], "scores": {"security": 55}})

    response = client.post(f"/api/blueprints/{blueprint['id']}/analyze")
    assert response.status_code == 200
    assert response.json()["analysis"]["scores"]["security"] == 55

    stored = client.get(f"/api/blueprints/{blueprint['id']}/analyze")
    assert stored.json()["analysis"]["analysisId"] == response.json()["analysis"]["analysisId"]


def test_checklist_flow(client):
    assert client.get("/api/checklist").json()["count"] == 0
    initialized = client.post("/api/checklist/initialize").json()
    assert initialized["inserted"] == 6
    assert client.post("/api/checklist/initialize").json()["inserted"] == 0

    created = client.post(
        "/api/checklist",
        json={
            "category": "Operations",
            "item": "On-call rotation",
            "description": "Someone owns alerts",
            "recommendedAction": "Publish a rotation",
            "owner": "SRE",
            "priority": "Medium",
        },
    )
    assert created.status_code == 201
    item_id = created.json()["item"]["_id"]

    assert client.post("/api/checklist", json={"category": "Operations"}).status_code == 400

    toggled = client.patch(f"/api/checklist/{item_id}/toggle").json()["item"]
    assert toggled["enabled"] is False
    assert client.get("/api/checklist/stats").status_code == 200
    assert client.delete(f"/api/checklist/{item_id}").status_code == 200
    assert client.delete(f"/api/checklist/{item_id}").status_code == 404


def test_test_llm_and_embeddings(client, llm):
    llm.push("ready")
    result = client.post("/api/test-llm", json={}).json()
    assert result["response"] == "ready"
    assert result["provider"] == "fake"
    assert llm.calls[0]["max_tokens"] == 200

    embeddings = client.post("/api/test-embeddings", json={"text": "three tier app"}).json()
    assert embeddings["dimensions"] == 256
    assert len(embeddings["preview"]) == 5

    assert client.post("/api/test-embeddings", json={"text": " "}).status_code == 400


def test_cache_stats_and_clear(client, analysis_cache):
    analysis_cache.put("f" * 64, {"id": "analysis-1"})
    stats = client.get("/api/cache/stats").json()
    assert stats["enabled"] is True
    assert stats["totalCached"] == 1
    cleared = client.delete("/api/cache").json()
    assert cleared["removed"] == 1


def test_system_endpoints(client):
    status = client.get("/api/status").json()
    assert "providerStatus" in status

    config = client.get("/api/config").json()
    assert config["vectorStore"]["type"] == "faiss"
    assert config["embeddings"]["dimensions"] == 256

    assert client.get("/api/dashboard").status_code == 200
    assert "totalCalls" in client.get("/api/usage").json()


def test_blueprint_file_with_non_ascii_name(client):
    created = client.post(
        "/api/blueprints",
        data={"name": "Arch", "description": "Unicode file name", "type": "architecture"},
        files={"file": ("架构.txt", "api -> db".encode("utf-8"), "text/plain")},
    )
    assert created.status_code == 200
    blueprint_id = created.json()["blueprint"]["id"]

    response = client.get(f"/api/blueprints/{blueprint_id}/file")
    assert response.status_code == 200
    assert response.content == "api -> db".encode("utf-8")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('inline; filename="')
    assert "filename*=UTF-8''" in disposition


def test_content_disposition_fallback():
    assert content_disposition("inline", "notes.txt") == 'inline; filename="notes.txt"'
    assert content_disposition("attachment", "架构.txt") == (
        "attachment; filename=\"__.txt\"; filename*=UTF-8''%E6%9E%B6%E6%9E%84.txt"
    )


def test_analyze_without_file_is_rejected_before_llm_lookup(client, analysis_service, checklist_service, analysis_cache):
    lookups = []

    def unconfigured():
        lookups.append(1)
        raise LLMError("No LLM provider configured", provider="none", status_code=503)

    lazy = ArchitectureAnalyzer(None, analysis_service, checklist_service, analysis_cache, llm_factory=unconfigured)
    app.dependency_overrides[get_architecture_analyzer] = lambda: lazy

    response = client.post("/api/analyze", data={"appId": "shop"})
    assert response.status_code == 400
    assert response.json() == {"error": "No file provided"}
    assert lookups == []

    failed = client.post("/api/analyze", files={"file": ("notes.txt", b"users -> api", "text/plain")})
    assert failed.status_code == 503
    assert lookups == [1]
