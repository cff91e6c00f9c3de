"""
Token estimation and LLM usage accounting.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func

from backend.app.core.config import get_settings
from backend.app.core.db.relational import DBLLMUsageLog, get_relational_session
from backend.app.observability.logging import log_event
from backend.app.observability.metrics import metrics


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return max(1, len(text) // 4)


def estimate_cost_usd(input_tokens: int, output_tokens: int) -> float:
    settings = get_settings()
    cost = (input_tokens / 1000.0) * settings.llm_cost_input_per_1k
    cost += (output_tokens / 1000.0) * settings.llm_cost_output_per_1k
    return round(cost, 6)


def record_llm_usage(
    provider: str,
    model: str,
    purpose: str,
    prompt: str,
    completion: str,
    latency_ms: int,
    success: bool,
):
    input_tokens = estimate_tokens(prompt)
    output_tokens = estimate_tokens(completion)
    cost_usd = estimate_cost_usd(input_tokens, output_tokens)
    metrics.inc("llm_tokens_input_total", input_tokens)
    metrics.inc("llm_tokens_output_total", output_tokens)
    metrics.inc("llm_cost_usd_total", cost_usd)
    try:
        with get_relational_session() as db:
            db.add(
                DBLLMUsageLog(
                    provider=provider,
                    model=model,
                    purpose=purpose,
                    tokens_input=input_tokens,
                    tokens_output=output_tokens,
                    cost_usd=cost_usd,
                    latency_ms=latency_ms,
                    success=success,
                )
            )
    except Exception as exc:
        log_event("usage_log_write_failed", provider=provider, purpose=purpose, error=str(exc))


def usage_summary() -> dict[str, Any]:
    with get_relational_session() as db:
        totals = db.query(
            func.count(DBLLMUsageLog.id),
            func.coalesce(func.sum(DBLLMUsageLog.tokens_input), 0),
            func.coalesce(func.sum(DBLLMUsageLog.tokens_output), 0),
            func.coalesce(func.sum(DBLLMUsageLog.cost_usd), 0.0),
        ).one()
        failures = db.query(func.count(DBLLMUsageLog.id)).filter(DBLLMUsageLog.success.is_(False)).scalar() or 0
        by_model = (
            db.query(
                DBLLMUsageLog.provider,
                DBLLMUsageLog.model,
                func.count(DBLLMUsageLog.id),
                func.coalesce(func.avg(DBLLMUsageLog.latency_ms), 0),
            )
            .group_by(DBLLMUsageLog.provider, DBLLMUsageLog.model)
            .all()
        )
        by_purpose = (
            db.query(DBLLMUsageLog.purpose, func.count(DBLLMUsageLog.id))
            .group_by(DBLLMUsageLog.purpose)
            .all()
        )

    return {
        "totalCalls": int(totals[0] or 0),
        "failedCalls": int(failures),
        "tokensInput": int(totals[1] or 0),
        "tokensOutput": int(totals[2] or 0),
        "costUSD": round(float(totals[3] or 0.0), 6),
        "byModel": [
            {"provider": p, "model": m, "calls": int(c), "avgLatencyMs": int(round(float(lat or 0)))}
            for p, m, c, lat in by_model
        ],
        "byPurpose": [{"purpose": purpose, "calls": int(c)} for purpose, c in by_purpose],
    }
