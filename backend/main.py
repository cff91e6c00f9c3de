"""
FastAPI Backend

API server for ArchLens: LLM architecture analysis, the blueprint library and
vector-similarity recommendations.
"""

# Load .env FIRST, before any other imports that use env vars.
from pathlib import Path
from dotenv import load_dotenv

# Load from project root by path (works regardless of current working directory)
_project_root = Path(__file__).resolve().parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(dotenv_path=_env_file)
else:
    load_dotenv()  # fallback: current directory

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from backend.app.api.analyses import router as analyses_router
from backend.app.api.blueprints import router as blueprints_router
from backend.app.api.checklist import router as checklist_router
from backend.app.api.system import router as system_router
from backend.app.core.config import get_settings
from backend.app.core.db.documents import get_document_store
from backend.app.core.db.mongo import ping_mongo
from backend.app.core.db.relational import init_relational_db
from backend.app.core.errors import ArchLensError
from backend.app.core.llm.client import LLMError, get_available_providers
from backend.app.embeddings.provider import EmbeddingError
from backend.app.observability.logging import log_event, setup_logging
from backend.app.observability.metrics import metrics

settings = get_settings()
setup_logging()
init_relational_db()


app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyses_router)
app.include_router(blueprints_router)
app.include_router(checklist_router)
app.include_router(system_router)


@app.exception_handler(ArchLensError)
async def archlens_error_handler(request: Request, exc: ArchLensError):
    if exc.status_code >= 500:
        log_event("request_failed", path=request.url.path, error_class=type(exc).__name__, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError):
    status_code = 503 if exc.status_code == 503 else 502
    log_event("llm_request_failed", path=request.url.path, provider=exc.provider, error=str(exc))
    return JSONResponse(status_code=status_code, content={"error": str(exc), "provider": exc.provider})


@app.exception_handler(EmbeddingError)
async def embedding_error_handler(request: Request, exc: EmbeddingError):
    log_event("embedding_request_failed", path=request.url.path, provider=exc.provider, error=str(exc))
    return JSONResponse(status_code=502, content={"error": str(exc), "provider": exc.provider})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    classification = type(exc).__name__
    log_event(
        "unhandled_exception",
        path=request.url.path,
        error_class=classification,
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"error": f"Internal error: {classification}"})


@app.get("/metrics")
async def get_metrics():
    payload, content_type = metrics.export()
    return PlainTextResponse(content=payload, media_type=content_type)


@app.get("/health")
async def health():
    document_store = get_document_store().backend
    body = {
        "status": "ok",
        "app": settings.app_name,
        "document_store": document_store,
        "llm_providers": get_available_providers(),
        "vector_store_type": settings.vector_store_type,
        "analysis_cache_enabled": settings.enable_analysis_cache,
    }
    if document_store == "mongodb":
        body["mongo_reachable"] = ping_mongo()
    return body


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
