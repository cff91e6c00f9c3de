import os
import tempfile

# Settings are read at import time, so point everything at a scratch dir first.
_TMP_DIR = tempfile.mkdtemp(prefix="archlens-tests-")
os.environ["DATA_DIR"] = _TMP_DIR
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/archlens-test.db"
os.environ["ENABLE_MONGO"] = "false"
os.environ["VECTOR_STORE_TYPE"] = "faiss"
os.environ["EMBEDDINGS_PROVIDER"] = "hashing"
os.environ["EMBEDDINGS_DIMENSIONS"] = "256"
for _key in (
    "LLM_PROVIDER",
    "GROQ_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "OLLAMA_HOST",
    "LOCAL_LLM_URL",
    "ENTERPRISE_LLM_URL",
):
    os.environ.pop(_key, None)

import json

import pytest

from backend.app.analysis.cache import CACHE_COLLECTION, AnalysisCache
from backend.app.analysis.pipeline import ArchitectureAnalyzer
from backend.app.core.db.documents import LocalDocumentStore
from backend.app.embeddings.provider import HashingEmbeddingProvider
from backend.app.services.analysis_service import ANALYSES_COLLECTION, AnalysisService
from backend.app.services.blueprint_analysis_service import BlueprintAnalysisService
from backend.app.services.blueprint_service import (
    BLUEPRINT_ANALYSES_COLLECTION,
    BLUEPRINTS_COLLECTION,
    BlueprintService,
)
from backend.app.services.checklist_service import CHECKLIST_COLLECTION, ChecklistService
from backend.app.services.embedding_service import EmbeddingService
from backend.app.services.query_service import QueryService
from backend.app.services.similarity_service import SimilarityService
from backend.app.vector_store.repository import InMemoryVectorStore

DIMENSIONS = 256


class FakeLLM:
    """Returns scripted responses in order and records every call."""

    provider = "fake"
    model = "fake-model"

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def push(self, *responses):
        for response in responses:
            self.responses.append(response if isinstance(response, str) else json.dumps(response))

    def complete(self, prompt, temperature=None, max_tokens=None, timeout_seconds=None, purpose="general"):
        self.calls.append(
            {"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens, "purpose": purpose}
        )
        if not self.responses:
            raise AssertionError(f"unexpected LLM call for purpose={purpose}")
        return self.responses.pop(0)

    def info(self):
        return {"provider": self.provider, "model": self.model}


@pytest.fixture
def doc_store(tmp_path):
    return LocalDocumentStore(tmp_path / "documents")


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def embedding_provider():
    return HashingEmbeddingProvider(model="hashing", dimensions=DIMENSIONS)


@pytest.fixture
def vector_store():
    return InMemoryVectorStore(DIMENSIONS)


@pytest.fixture
def embedding_service(embedding_provider, vector_store):
    return EmbeddingService(embedding_provider, vector_store)


@pytest.fixture
def analysis_service(doc_store):
    return AnalysisService(doc_store.collection(ANALYSES_COLLECTION))


@pytest.fixture
def checklist_service(doc_store):
    return ChecklistService(doc_store.collection(CHECKLIST_COLLECTION))


@pytest.fixture
def analysis_cache(doc_store):
    return AnalysisCache(doc_store.collection(CACHE_COLLECTION), ttl_hours=24)


@pytest.fixture
def analyzer(llm, analysis_service, checklist_service, analysis_cache):
    return ArchitectureAnalyzer(llm, analysis_service, checklist_service, analysis_cache)


@pytest.fixture
def blueprint_service(doc_store, embedding_service, analysis_service):
    return BlueprintService(
        doc_store.collection(BLUEPRINTS_COLLECTION),
        doc_store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        embedding_service,
        analysis_service,
    )


@pytest.fixture
def similarity_service(embedding_service, doc_store):
    return SimilarityService(embedding_service, doc_store.collection(BLUEPRINTS_COLLECTION))


@pytest.fixture
def blueprint_analysis_service(llm, doc_store, embedding_service):
    return BlueprintAnalysisService(
        llm,
        doc_store.collection(BLUEPRINTS_COLLECTION),
        doc_store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        embedding_service,
    )


@pytest.fixture
def query_service(llm, analysis_service, doc_store, similarity_service):
    return QueryService(
        llm,
        analysis_service,
        doc_store.collection(BLUEPRINTS_COLLECTION),
        doc_store.collection(BLUEPRINT_ANALYSES_COLLECTION),
        similarity_service,
    )


@pytest.fixture
def make_blueprint(blueprint_service):
    def _make(name="Serverless Shop", description="Serverless e-commerce storefront on AWS", **extra):
        data = {
            "name": name,
            "description": description,
            "type": "architecture",
            "category": "E-commerce",
            "tags": "serverless,aws",
            "cloudProviders": "aws",
            **extra,
        }
        return blueprint_service.create(data, file_name="diagram.txt", content_type="text/plain", content=b"lambda -> dynamodb")

    return _make


@pytest.fixture
def client(
    llm,
    analyzer,
    analysis_service,
    checklist_service,
    analysis_cache,
    blueprint_service,
    similarity_service,
    blueprint_analysis_service,
    query_service,
    embedding_provider,
):
    from fastapi.testclient import TestClient

    from backend.app.analysis.cache import get_analysis_cache
    from backend.app.analysis.pipeline import get_architecture_analyzer
    from backend.app.core.llm.client import get_llm_client
    from backend.app.embeddings.provider import get_embedding_provider
    from backend.app.services.analysis_service import get_analysis_service
    from backend.app.services.blueprint_analysis_service import get_blueprint_analysis_service
    from backend.app.services.blueprint_service import get_blueprint_service
    from backend.app.services.checklist_service import get_checklist_service
    from backend.app.services.query_service import get_query_service
    from backend.app.services.similarity_service import get_similarity_service
    from backend.main import app

    app.dependency_overrides = {
        get_architecture_analyzer: lambda: analyzer,
        get_analysis_service: lambda: analysis_service,
        get_checklist_service: lambda: checklist_service,
        get_analysis_cache: lambda: analysis_cache,
        get_blueprint_service: lambda: blueprint_service,
        get_similarity_service: lambda: similarity_service,
        get_blueprint_analysis_service: lambda: blueprint_analysis_service,
        get_query_service: lambda: query_service,
        get_llm_client: lambda: llm,
        get_embedding_provider: lambda: embedding_provider,
    }
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}
