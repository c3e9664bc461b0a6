"""
Mindmap Engine — FastAPI entry point
=====================================
  • Global exception handler — never crashes, always returns JSON
  • Upload (TXT / PDF / DOCX) or pasted text → hierarchical mind map
  • Single-read handoff of each map to the viewer session
  • PDF export and link sharing of validated maps
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mindmap_engine.api.v1.endpoints.mindmap import router as mindmap_router
from mindmap_engine.core.config import settings
from mindmap_engine.schemas.results import ErrorResponse
from mindmap_engine.services.handoff_service import HandoffRegistry

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Mindmap Engine",
    description=(
        "Document-to-mind-map synthesis service.\n"
        "Upload a TXT, PDF or DOCX file, or paste text → receive a hierarchical mind map."
    ),
    version="1.0.0",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
app.state.handoff = HandoffRegistry(settings.HANDOFF_MAX_SESSIONS)


# ── Global Exception Handler ────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "Mindmap Engine",
        "version": app.version,
        "provider": settings.AI_PROVIDER,
        "oracle_configured": settings.oracle_api_key is not None,
        "pending_handoffs": len(app.state.handoff),
    }


app.include_router(mindmap_router, prefix="/api/v1")
