import logging
from typing import Optional

from mindmap_engine.ai_engine import MindmapSynthesizer
from mindmap_engine.core.config import Settings, settings
from mindmap_engine.schemas.results import ErrorKind, PipelineResult
from mindmap_engine.services.content_service import validate_content
from mindmap_engine.services.file_service import (
    TextExtractor,
    UploadedFile,
    build_text_extractor,
    validate_file,
)

logger = logging.getLogger(__name__)


class MindmapPipeline:
    """
    upload → validate file → extract → validate content → synthesize.
    Stages run strictly in order; the first failure ends the run.
    """

    def __init__(
        self,
        synthesizer: MindmapSynthesizer,
        extractor: Optional[TextExtractor] = None,
        config: Settings = settings,
    ):
        self.synthesizer = synthesizer
        self.extractor = extractor or build_text_extractor(config)
        self.config = config

    async def from_upload(self, file: UploadedFile) -> PipelineResult:
        validation = validate_file(file, self.config)
        if not validation.accepted:
            logger.warning(f"[UPLOAD] ✗ {file.name}: {validation.reason}")
            return PipelineResult(
                success=False,
                error=validation.reason,
                kind=ErrorKind.INPUT_POLICY,
                too_large=validation.too_large,
            )

        extraction = await self.extractor.extract(file)
        if not extraction.success:
            return PipelineResult(success=False, error=extraction.error, kind=extraction.kind)

        return await self.from_text(extraction.text or "")

    async def from_text(self, text: str) -> PipelineResult:
        validation = validate_content(text, self.config)
        if not validation.valid:
            return PipelineResult(success=False, error=validation.reason, kind=ErrorKind.INPUT_POLICY)

        result = await self.synthesizer.synthesize(text)
        return PipelineResult(
            success=result.success,
            tree=result.tree,
            error=result.error,
            kind=result.kind,
            timed_out=result.timed_out,
        )
