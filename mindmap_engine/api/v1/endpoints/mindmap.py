import json
import time
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from mindmap_engine.ai_engine import MindmapSynthesizer
from mindmap_engine.core.config import Settings, settings
from mindmap_engine.schemas.mindmap import MindmapTree
from mindmap_engine.schemas.results import (
    APIResponse,
    ErrorKind,
    ErrorResponse,
    MindMapData,
    MindMapRequest,
    PipelineResult,
    ProcessingMeta,
    ProcessingStatus,
    ShareRequest,
)
from mindmap_engine.services.export_service import (
    ClientClipboard,
    ExportCoordinator,
    PdfOutlineExporter,
    ShareCoordinator,
)
from mindmap_engine.services.file_service import UploadedFile, build_text_extractor, validate_file
from mindmap_engine.services.handoff_service import HandoffRegistry
from mindmap_engine.services.pipeline import MindmapPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_KIND = {
    ErrorKind.INPUT_POLICY: 400,
    ErrorKind.EXTRACTION_UNAVAILABLE: 501,
    ErrorKind.EXTRACTION_FAILED: 422,
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.ORACLE: 502,
    ErrorKind.STRUCTURAL: 502,
}


# ── Dependencies ─────────────────────────────────────────────────────────────

def get_settings() -> Settings:
    return settings


def get_synthesizer(config: Settings = Depends(get_settings)) -> MindmapSynthesizer:
    return MindmapSynthesizer(config=config)


def get_pipeline(
    synthesizer: MindmapSynthesizer = Depends(get_synthesizer),
    config: Settings = Depends(get_settings),
) -> MindmapPipeline:
    return MindmapPipeline(synthesizer, build_text_extractor(config), config)


def get_handoff(request: Request) -> HandoffRegistry:
    return request.app.state.handoff


def get_export_coordinator() -> ExportCoordinator:
    return ExportCoordinator(PdfOutlineExporter())


# ── Helpers ──────────────────────────────────────────────────────────────────

def _error(
    kind: Optional[ErrorKind],
    message: Optional[str],
    timed_out: bool = False,
    too_large: bool = False,
) -> JSONResponse:
    status_code = _STATUS_BY_KIND.get(kind, 500)
    if timed_out:
        status_code = 504
    elif too_large:
        status_code = 413
    body = ErrorResponse(status="error", message=message or "Processing failed.", kind=kind)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _success(
    result: PipelineResult,
    handoff: HandoffRegistry,
    session_id: Optional[str],
    start: float,
    file_name: Optional[str] = None,
) -> APIResponse:
    channel = handoff.open(session_id)
    channel.put(result.tree)
    return APIResponse(
        status="success",
        meta=ProcessingMeta(
            processing_time=f"{time.perf_counter() - start:.1f}s",
            file_name=file_name,
            stats=result.tree.stats(),
        ),
        data=MindMapData(session_id=channel.session_id, mind_map=result.tree),
    )


async def _sse_wrapper(generator: AsyncGenerator[str, None]):
    """Wraps an async generator into SSE format."""
    try:
        async for chunk in generator:
            yield f"data: {chunk}\n\n"
        yield "data: [DONE]\n\n"
    except Exception as e:
        logger.error(f"SSE stream error: {e}")
        yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"
        yield "data: [DONE]\n\n"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. FILE UPLOAD → TEXT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/files/extract", tags=["Processing"])
async def extract_file(
    file: UploadFile = File(...),
    config: Settings = Depends(get_settings),
):
    """Validate an uploaded TXT/PDF/DOCX and return its plain text."""
    uploaded = UploadedFile.from_upload(file)

    validation = validate_file(uploaded, config)
    if not validation.accepted:
        logger.warning(f"[UPLOAD] ✗ {uploaded.name}: {validation.reason}")
        return _error(ErrorKind.INPUT_POLICY, validation.reason, too_large=validation.too_large)

    result = await build_text_extractor(config).extract(uploaded)
    if not result.success:
        return _error(result.kind, result.error)

    return {"text": result.text, "success": True}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. TEXT → MIND MAP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap", response_model=APIResponse, tags=["Processing"])
async def create_mindmap(
    request: MindMapRequest,
    pipeline: MindmapPipeline = Depends(get_pipeline),
    handoff: HandoffRegistry = Depends(get_handoff),
    x_session_id: Optional[str] = Header(default=None),
):
    """Synthesize a mind map from pasted text and stage it for the viewer."""
    start = time.perf_counter()
    result = await pipeline.from_text(request.text)
    if not result.success:
        return _error(result.kind, result.error, result.timed_out)
    return _success(result, handoff, x_session_id, start)


@router.post("/mindmap/stream", tags=["Processing"])
async def create_mindmap_stream(
    request: MindMapRequest,
    pipeline: MindmapPipeline = Depends(get_pipeline),
    handoff: HandoffRegistry = Depends(get_handoff),
    x_session_id: Optional[str] = Header(default=None),
):
    """Stream mind map generation status via Server-Sent Events."""

    async def events() -> AsyncGenerator[str, None]:
        start = time.perf_counter()
        yield json.dumps({
            "type": "status",
            "status": ProcessingStatus.processing.value,
            "message": "Analyzing concepts...",
        })
        result = await pipeline.from_text(request.text)
        if not result.success:
            yield json.dumps({
                "type": "error",
                "status": ProcessingStatus.error.value,
                "kind": result.kind.value if result.kind else None,
                "message": result.error,
            })
            return
        response = _success(result, handoff, x_session_id, start)
        yield json.dumps({"type": "status", "status": ProcessingStatus.completed.value, "message": "Done ✓"})
        yield json.dumps({"type": "result", "data": response.model_dump(mode="json")})

    return StreamingResponse(
        _sse_wrapper(events()),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. FULL PIPELINE — UPLOAD → MIND MAP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/process", response_model=APIResponse, tags=["Processing"])
async def process_document(
    file: UploadFile = File(...),
    pipeline: MindmapPipeline = Depends(get_pipeline),
    handoff: HandoffRegistry = Depends(get_handoff),
    x_session_id: Optional[str] = Header(default=None),
):
    """validate → extract → validate content → synthesize → stage for viewer."""
    start = time.perf_counter()
    uploaded = UploadedFile.from_upload(file)

    result = await pipeline.from_upload(uploaded)
    if not result.success:
        return _error(result.kind, result.error, result.timed_out, result.too_large)

    response = _success(result, handoff, x_session_id, start, file_name=uploaded.name)
    logger.info(
        f"[PROCESS] ✓ {uploaded.name} — {response.meta.stats.total_nodes} nodes — "
        f"{response.meta.processing_time}"
    )
    return response


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 4. HANDOFF — GENERATION → VIEWER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.get("/mindmap/handoff/{session_id}", tags=["Viewer"])
async def take_mindmap(session_id: str, handoff: HandoffRegistry = Depends(get_handoff)):
    """Deliver the staged mind map once; later reads find no map."""
    tree = handoff.take(session_id)
    if tree is None:
        body = ErrorResponse(
            status="error",
            message="No mind map data found.",
            detail="Generate a mind map first.",
        )
        return JSONResponse(status_code=404, content=body.model_dump(mode="json"))
    return {"status": "success", "mind_map": tree.model_dump(mode="json"), "stats": tree.stats().model_dump()}


@router.delete("/mindmap/handoff/{session_id}", tags=["Viewer"])
async def discard_mindmap(session_id: str, handoff: HandoffRegistry = Depends(get_handoff)):
    return {"status": "success", "discarded": handoff.discard(session_id)}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 5. EXPORT & SHARE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap/export", tags=["Viewer"])
async def export_mindmap(
    tree: MindmapTree,
    coordinator: ExportCoordinator = Depends(get_export_coordinator),
):
    """Render a validated mind map as a PDF document."""
    result = await coordinator.export_as_document(tree)
    if not result.success:
        body = ErrorResponse(status="error", message="Export failed.", detail=result.error)
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))
    return Response(
        content=result.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.post("/mindmap/share", tags=["Viewer"])
async def share_mindmap(request: ShareRequest, config: Settings = Depends(get_settings)):
    """
    No native share target exists server-side, so the link always takes
    the clipboard path and the client performs the copy.
    """
    url = f"{config.PUBLIC_BASE_URL.rstrip('/')}/mindmap"
    if request.session_id:
        url = f"{url}/{request.session_id}"

    clipboard = ClientClipboard()
    result = await ShareCoordinator(clipboard).share_link(request.title, url)
    return {"status": "success", **result.model_dump(), "copy_text": clipboard.copied}
