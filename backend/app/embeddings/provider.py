"""
Embedding providers.

Every provider turns a text into a fixed-length float vector. The hashing
provider is deterministic and runs offline; the others call an embedding API.
"""

from __future__ import annotations

import hashlib
import math
import re
from typing import Any

import httpx

from backend.app.core.config import Settings, get_settings
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


class EmbeddingError(RuntimeError):
    def __init__(self, message: str, provider: str):
        super().__init__(message)
        self.message = message
        self.provider = provider


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingProvider:
    name = "base"

    def __init__(self, model: str, dimensions: int, base_url: str = "", api_key: str = "", timeout: float = 30.0):
        self.model = model
        self.dimensions = dimensions
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def embed(self, text: str) -> list[float]:
        if not (text or "").strip():
            raise EmbeddingError("Cannot embed empty text", provider=self.name)
        try:
            vector = self._embed(text)
        except EmbeddingError:
            metrics.inc("embedding_failures_total")
            raise
        except Exception as exc:
            metrics.inc("embedding_failures_total")
            raise EmbeddingError(f"{self.name} embedding failed: {exc}", provider=self.name) from exc
        if not vector:
            metrics.inc("embedding_failures_total")
            raise EmbeddingError(f"{self.name} returned an empty embedding", provider=self.name)
        metrics.inc("embeddings_generated_total")
        return [float(x) for x in vector]

    def _embed(self, text: str) -> list[float]:
        raise NotImplementedError

    def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None) -> Any:
        try:
            response = httpx.post(url, json=payload, headers=headers or {}, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"{self.name} transport error: {exc}", provider=self.name) from exc
        if response.status_code >= 400:
            raise EmbeddingError(
                f"{self.name} returned HTTP {response.status_code}: {response.text[:300]}",
                provider=self.name,
            )
        return response.json()

    def info(self) -> dict[str, Any]:
        return {"provider": self.name, "model": self.model, "dimensions": self.dimensions}


class LocalEmbeddingProvider(EmbeddingProvider):
    """OpenAI-compatible `/v1/embeddings` endpoint, e.g. Ollama or LM Studio."""

    name = "local"

    def _embed(self, text: str) -> list[float]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        data = self._post(
            f"{self.base_url}/v1/embeddings",
            {"model": self.model, "input": text, "encoding_format": "float"},
            headers,
        )
        rows = data.get("data") or []
        if not rows:
            raise EmbeddingError("Embedding response had no data", provider=self.name)
        return rows[0].get("embedding") or []


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def _embed(self, text: str) -> list[float]:
        from openai import OpenAI

        kwargs: dict[str, Any] = {"api_key": self.api_key, "timeout": self.timeout}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        client = OpenAI(**kwargs)
        response = client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)


class CohereEmbeddingProvider(EmbeddingProvider):
    name = "cohere"

    def _embed(self, text: str) -> list[float]:
        data = self._post(
            f"{self.base_url or 'https://api.cohere.ai'}/v1/embed",
            {"model": self.model, "texts": [text], "input_type": "search_document"},
            {"Authorization": f"Bearer {self.api_key}"},
        )
        rows = data.get("embeddings") or []
        return rows[0] if rows else []


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    name = "huggingface"

    def _embed(self, text: str) -> list[float]:
        base = self.base_url or "https://api-inference.huggingface.co"
        data = self._post(
            f"{base}/pipeline/feature-extraction/{self.model}",
            {"inputs": text},
            {"Authorization": f"Bearer {self.api_key}"},
        )
        # sentence models return a flat vector, token models a nested one
        if data and isinstance(data[0], list):
            return data[0]
        return data


class HashingEmbeddingProvider(EmbeddingProvider):
    """Signed feature hashing over lowercase word tokens, unit normalised."""

    name = "hashing"

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0:
            return vector
        return [x / norm for x in vector]


PROVIDERS: dict[str, type[EmbeddingProvider]] = {
    "local": LocalEmbeddingProvider,
    "ollama": LocalEmbeddingProvider,
    "openai": OpenAIEmbeddingProvider,
    "cohere": CohereEmbeddingProvider,
    "huggingface": HuggingFaceEmbeddingProvider,
    "hashing": HashingEmbeddingProvider,
}


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    name = settings.embeddings_provider
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        log_event("embedding_provider_unknown", provider=name, fallback="local")
        provider_cls = LocalEmbeddingProvider
    base_url = settings.embeddings_base_url
    if provider_cls is not LocalEmbeddingProvider and base_url == "http://localhost:11434":
        base_url = ""
    return provider_cls(
        model=settings.embeddings_model,
        dimensions=settings.embeddings_dimensions,
        base_url=base_url,
        api_key=settings.embeddings_api_key,
    )


_provider_cache: EmbeddingProvider | None = None


def get_embedding_provider() -> EmbeddingProvider:
    global _provider_cache
    if _provider_cache is None:
        _provider_cache = build_embedding_provider(get_settings())
        log_event("embedding_provider_ready", **_provider_cache.info())
    return _provider_cache
