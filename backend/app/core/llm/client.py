"""
LLM client

Single entry point for completion calls. Every provider receives one user
message and returns plain text. No streaming. No retries.

Provider credentials are read from the environment; main.py loads .env before
this module is imported.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from backend.app.core.config import get_settings
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics
from backend.app.services.token_usage import record_llm_usage
from backend.app.utils.dates import utc_iso_now


class LLMProvider(str, Enum):
    GROQ = "groq"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    LOCAL = "local"
    ENTERPRISE = "enterprise"


DEFAULT_MODELS = {
    LLMProvider.GROQ: "llama-3.1-8b-instant",
    LLMProvider.OPENAI: "gpt-4o",
    LLMProvider.ANTHROPIC: "claude-3-5-sonnet-latest",
    LLMProvider.GEMINI: "gemini-1.5-pro",
    LLMProvider.OLLAMA: "llama3.1",
    LLMProvider.LOCAL: "local-model",
    LLMProvider.ENTERPRISE: "gpt-4o",
}

# (credential or endpoint variable, model variable)
PROVIDER_ENV = {
    LLMProvider.GROQ: ("GROQ_API_KEY", "GROQ_MODEL"),
    LLMProvider.OPENAI: ("OPENAI_API_KEY", "OPENAI_MODEL"),
    LLMProvider.ANTHROPIC: ("ANTHROPIC_API_KEY", "ANTHROPIC_MODEL"),
    LLMProvider.GEMINI: ("GEMINI_API_KEY", "GEMINI_MODEL"),
    LLMProvider.OLLAMA: ("OLLAMA_HOST", "OLLAMA_MODEL"),
    LLMProvider.LOCAL: ("LOCAL_LLM_URL", "LOCAL_LLM_MODEL"),
    LLMProvider.ENTERPRISE: ("ENTERPRISE_LLM_URL", "ENTERPRISE_LLM_MODEL"),
}


@dataclass
class LLMConfig:
    provider: LLMProvider
    model: str
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.2
    max_tokens: int = 4000
    timeout_seconds: float = 120.0


class LLMError(RuntimeError):
    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code


class LLMClient:
    def __init__(self, config: LLMConfig):
        self.config = config

    @property
    def provider(self) -> str:
        return self.config.provider.value

    @property
    def model(self) -> str:
        return self.config.model

    def info(self) -> dict[str, Any]:
        return {"provider": self.provider, "model": self.model}

    def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        purpose: str = "general",
    ) -> str:
        temp = self.config.temperature if temperature is None else temperature
        tokens = self.config.max_tokens if max_tokens is None else max_tokens
        timeout = self.config.timeout_seconds if timeout_seconds is None else timeout_seconds

        started = time.perf_counter()
        metrics.inc("llm_calls_total")
        try:
            text = self._complete(prompt, temp, tokens, timeout)
            text = (text or "").strip()
            if not text:
                raise LLMError(f"Empty response from {self.provider}", provider=self.provider)
        except Exception as exc:
            latency_ms = int((time.perf_counter() - started) * 1000)
            metrics.inc("llm_call_failures_total")
            if isinstance(exc, LLMError):
                error = exc
            else:
                error = LLMError(
                    f"{self.provider} request failed: {exc}",
                    provider=self.provider,
                    status_code=getattr(exc, "status_code", None),
                )
            log_event(
                "llm_call_failed",
                provider=self.provider,
                model=self.model,
                purpose=purpose,
                status_code=error.status_code,
                latency_ms=latency_ms,
                error=error.message,
            )
            record_llm_usage(
                provider=self.provider,
                model=self.model,
                purpose=purpose,
                prompt=prompt,
                completion="",
                latency_ms=latency_ms,
                success=False,
            )
            if error is exc:
                raise
            raise error from exc

        latency_ms = int((time.perf_counter() - started) * 1000)
        metrics.observe("llm_latency_seconds", latency_ms / 1000.0)
        log_event(
            "llm_call_completed",
            provider=self.provider,
            model=self.model,
            purpose=purpose,
            latency_ms=latency_ms,
            prompt_chars=len(prompt),
            completion_chars=len(text),
        )
        record_llm_usage(
            provider=self.provider,
            model=self.model,
            purpose=purpose,
            prompt=prompt,
            completion=text,
            latency_ms=latency_ms,
            success=True,
        )
        return text

    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        raise NotImplementedError

    def _post_json(self, url: str, payload: dict, headers: dict, timeout: float) -> dict:
        try:
            response = httpx.post(url, json=payload, headers=headers, timeout=timeout)
        except httpx.HTTPError as exc:
            raise LLMError(f"{self.provider} transport error: {exc}", provider=self.provider) from exc
        if response.status_code >= 400:
            raise LLMError(
                f"{self.provider} returned HTTP {response.status_code}: {response.text[:300]}",
                provider=self.provider,
                status_code=response.status_code,
            )
        return response.json()


class GroqLLMClient(LLMClient):
    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        from groq import Groq

        client = Groq(api_key=self.config.api_key, timeout=timeout)
        response = client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response or not response.choices:
            raise LLMError("Empty response from Groq", provider=self.provider)
        return response.choices[0].message.content or ""


class OpenAILLMClient(LLMClient):
    """OpenAI and any OpenAI-compatible endpoint (local servers, enterprise gateways)."""

    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        from openai import OpenAI

        kwargs: dict[str, Any] = {"api_key": self.config.api_key or "not-needed", "timeout": timeout}
        if self.config.base_url:
            kwargs["base_url"] = self.config.base_url
        client = OpenAI(**kwargs)
        response = client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response or not response.choices:
            raise LLMError(f"Empty response from {self.provider}", provider=self.provider)
        return response.choices[0].message.content or ""


class AnthropicLLMClient(LLMClient):
    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        base = self.config.base_url or "https://api.anthropic.com"
        data = self._post_json(
            f"{base}/v1/messages",
            payload={
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json",
            },
            timeout=timeout,
        )
        blocks = data.get("content") or []
        return "".join(str(b.get("text") or "") for b in blocks if isinstance(b, dict))


class GeminiLLMClient(LLMClient):
    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        base = self.config.base_url or "https://generativelanguage.googleapis.com"
        data = self._post_json(
            f"{base}/v1beta/models/{self.model}:generateContent?key={self.config.api_key}",
            payload={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
            },
            headers={"content-type": "application/json"},
            timeout=timeout,
        )
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


class OllamaLLMClient(LLMClient):
    def _complete(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        data = self._post_json(
            f"{self.config.base_url}/api/generate",
            payload={
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": temperature, "num_predict": max_tokens},
            },
            headers={"content-type": "application/json"},
            timeout=timeout,
        )
        return str(data.get("response") or "")


_CLIENT_CLASSES = {
    LLMProvider.GROQ: GroqLLMClient,
    LLMProvider.OPENAI: OpenAILLMClient,
    LLMProvider.ANTHROPIC: AnthropicLLMClient,
    LLMProvider.GEMINI: GeminiLLMClient,
    LLMProvider.OLLAMA: OllamaLLMClient,
    LLMProvider.LOCAL: OpenAILLMClient,
    LLMProvider.ENTERPRISE: OpenAILLMClient,
}


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def is_provider_available(provider: str) -> bool:
    try:
        key = LLMProvider(str(provider).strip().lower())
    except ValueError:
        return False
    credential_var, _ = PROVIDER_ENV[key]
    return bool(_env(credential_var))


def get_available_providers() -> list[str]:
    return [p.value for p in LLMProvider if is_provider_available(p.value)]


def build_llm_config(provider: LLMProvider) -> LLMConfig:
    settings = get_settings()
    credential_var, model_var = PROVIDER_ENV[provider]
    model = _env(model_var) or settings.llm_model or DEFAULT_MODELS[provider]

    api_key = ""
    base_url = ""
    if provider in {LLMProvider.OLLAMA, LLMProvider.LOCAL, LLMProvider.ENTERPRISE}:
        base_url = _env(credential_var).rstrip("/")
        if provider == LLMProvider.ENTERPRISE:
            api_key = _env("ENTERPRISE_LLM_TOKEN")
        elif provider == LLMProvider.LOCAL:
            api_key = _env("LOCAL_LLM_API_KEY")
    else:
        api_key = _env(credential_var)

    return LLMConfig(
        provider=provider,
        model=model,
        api_key=api_key,
        base_url=base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def create_llm_client_from_env() -> LLMClient | None:
    settings = get_settings()
    requested = settings.llm_provider
    provider: LLMProvider | None = None

    if requested:
        if is_provider_available(requested):
            provider = LLMProvider(requested)
        else:
            log_event("llm_provider_unavailable", requested=requested)

    if provider is None:
        available = get_available_providers()
        if not available:
            return None
        provider = LLMProvider(available[0])

    config = build_llm_config(provider)
    return _CLIENT_CLASSES[provider](config)


_client_cache: LLMClient | None = None


def get_llm_client() -> LLMClient:
    global _client_cache
    if _client_cache is not None:
        return _client_cache
    client = create_llm_client_from_env()
    if client is None:
        raise LLMError("No LLM provider configured", provider="none", status_code=503)
    log_event("llm_client_ready", **client.info())
    _client_cache = client
    return _client_cache


def reset_llm_client():
    global _client_cache
    _client_cache = None


def llm_status() -> dict[str, Any]:
    available = get_available_providers()
    current: dict[str, Any] | None = None
    status = "healthy"
    message = "LLM system is operational"
    try:
        client = create_llm_client_from_env()
        if client is None:
            status = "warning"
            message = "No LLM provider configured"
        else:
            current = client.info()
    except Exception as exc:
        status = "error"
        message = f"LLM system error: {exc}"

    provider_status = [
        {
            "provider": p.value,
            "available": is_provider_available(p.value),
            "current": bool(current and current.get("provider") == p.value),
        }
        for p in LLMProvider
    ]
    return {
        "status": status,
        "message": message,
        "availableProviders": available,
        "providerCount": len(available),
        "currentClient": current,
        "providerStatus": provider_status,
        "environmentStatus": {p.value: is_provider_available(p.value) for p in LLMProvider},
        "timestamp": utc_iso_now(),
    }
