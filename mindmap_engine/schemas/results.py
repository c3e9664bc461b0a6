"""
Mind Map — Result Envelopes
============================
Every pipeline stage returns one of these tagged results instead of raising
across a stage boundary. The HTTP layer wraps them in APIResponse or
ErrorResponse.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from mindmap_engine.schemas.mindmap import MindmapStats, MindmapTree


class ErrorKind(str, Enum):
    INPUT_POLICY = "input_policy"
    EXTRACTION_UNAVAILABLE = "extraction_unavailable"
    EXTRACTION_FAILED = "extraction_failed"
    CONFIGURATION = "configuration"
    ORACLE = "oracle"
    STRUCTURAL = "structural"


class ProcessingStatus(str, Enum):
    idle = "idle"
    processing = "processing"
    completed = "completed"
    error = "error"


# ── Stage results ────────────────────────────────────────────────────────────

class FileValidation(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    too_large: bool = False


class ContentValidation(BaseModel):
    valid: bool
    reason: Optional[str] = None


class ExtractionResult(BaseModel):
    success: bool
    text: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None


class SynthesisResult(BaseModel):
    success: bool
    tree: Optional[MindmapTree] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    timed_out: bool = False


class ExportResult(BaseModel):
    success: bool
    error: Optional[str] = None
    filename: Optional[str] = None
    content: Optional[bytes] = Field(default=None, repr=False)


class ShareResult(BaseModel):
    delivered_via: Literal["native-share", "clipboard-fallback"]
    url: str


class PipelineResult(BaseModel):
    """Outcome of a full upload/paste → tree run."""
    success: bool
    tree: Optional[MindmapTree] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    timed_out: bool = False
    too_large: bool = False


# ── HTTP envelopes ───────────────────────────────────────────────────────────

class MindMapRequest(BaseModel):
    """Request body for mind map generation."""
    text: str = Field(..., description="Text to synthesize into a mind map")


class ShareRequest(BaseModel):
    title: str = Field(..., min_length=1)
    session_id: Optional[str] = None


class ProcessingMeta(BaseModel):
    """Metadata about the processing run."""
    processing_time: str = Field(..., description="e.g. '12.4s'")
    file_name: Optional[str] = None
    stats: MindmapStats


class MindMapData(BaseModel):
    session_id: str
    mind_map: MindmapTree


class APIResponse(BaseModel):
    """Standard success envelope."""
    status: str = "success"
    meta: ProcessingMeta
    data: MindMapData


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None
    kind: Optional[ErrorKind] = None
