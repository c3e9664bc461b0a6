"""
End-to-end pipeline tests (upload / paste → tree)
"""
import asyncio

import pytest

from mindmap_engine.ai_engine import MindmapSynthesizer
from mindmap_engine.api.v1.endpoints.mindmap import create_mindmap
from mindmap_engine.schemas.results import ErrorKind, MindMapRequest
from mindmap_engine.services.file_service import PDF_MIME, DocumentFormat, TextExtractor
from mindmap_engine.services.handoff_service import HandoffRegistry
from mindmap_engine.services.pipeline import MindmapPipeline


@pytest.fixture
def pipeline(config, fake_oracle):
    return MindmapPipeline(MindmapSynthesizer(oracle=fake_oracle, config=config), config=config)


class TestMindmapPipeline:

    @pytest.mark.asyncio
    async def test_text_file_to_tree(self, pipeline, make_file, passage):
        result = await pipeline.from_upload(make_file("notes.txt", "text/plain", passage.encode()))
        assert result.success
        assert result.tree.root.level == 0

    @pytest.mark.asyncio
    async def test_rejected_file_stops_pipeline(self, pipeline, make_file, fake_oracle):
        result = await pipeline.from_upload(make_file("photo.png", "image/png", b"\x89PNG"))
        assert result.kind == ErrorKind.INPUT_POLICY
        assert fake_oracle.calls == []

    @pytest.mark.asyncio
    async def test_oversized_file(self, pipeline, make_file):
        result = await pipeline.from_upload(make_file("a.txt", "text/plain", size_bytes=11 * 1024 * 1024))
        assert "too large" in result.error
        assert result.too_large

    @pytest.mark.asyncio
    async def test_pdf_not_implemented(self, pipeline, make_file, fake_oracle):
        result = await pipeline.from_upload(make_file("paper.pdf", PDF_MIME, b"%PDF" + b"0" * 30 * 1024))
        assert not result.success
        assert result.kind == ErrorKind.EXTRACTION_UNAVAILABLE
        assert fake_oracle.calls == []

    @pytest.mark.asyncio
    async def test_short_extracted_text(self, pipeline, make_file, fake_oracle):
        result = await pipeline.from_upload(make_file("notes.txt", "text/plain", b"Too short."))
        assert result.kind == ErrorKind.INPUT_POLICY
        assert "too short" in result.error
        assert fake_oracle.calls == []

    @pytest.mark.asyncio
    async def test_forty_character_paste(self, pipeline, fake_oracle):
        result = await pipeline.from_text("a" * 40)
        assert "too short" in result.error
        assert fake_oracle.calls == []

    @pytest.mark.asyncio
    async def test_custom_extractor(self, config, fake_oracle, make_file, passage):
        async def fake_pdf(content):
            return passage

        extractor = TextExtractor({DocumentFormat.pdf: fake_pdf})
        pipeline = MindmapPipeline(MindmapSynthesizer(oracle=fake_oracle, config=config), extractor, config)
        result = await pipeline.from_upload(make_file("paper.pdf", PDF_MIME, b"%PDF-1.4"))
        assert result.success
        assert fake_oracle.calls == [passage]

    @pytest.mark.asyncio
    async def test_missing_credential(self, config_without_key, fake_oracle, passage):
        pipeline = MindmapPipeline(
            MindmapSynthesizer(oracle=fake_oracle, config=config_without_key),
            config=config_without_key,
        )
        result = await pipeline.from_text(passage)
        assert result.kind == ErrorKind.CONFIGURATION
        assert fake_oracle.calls == []


class StallingOracle:
    """Blocks inside the oracle call until the test releases or cancels it."""

    name = "Stalling"

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def structure(self, text):
        self.started.set()
        await self.release.wait()
        return ""


class TestAbandonedRequest:
    """A cancelled run stops quietly and stages nothing for the viewer"""

    @pytest.mark.asyncio
    async def test_cancelled_pipeline(self, config, passage):
        oracle = StallingOracle()
        pipeline = MindmapPipeline(MindmapSynthesizer(oracle=oracle, config=config), config=config)

        task = asyncio.create_task(pipeline.from_text(passage))
        await oracle.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_cancelled_request_leaves_no_handoff(self, config, passage):
        oracle = StallingOracle()
        pipeline = MindmapPipeline(MindmapSynthesizer(oracle=oracle, config=config), config=config)
        registry = HandoffRegistry()

        task = asyncio.create_task(create_mindmap(
            MindMapRequest(text=passage),
            pipeline=pipeline,
            handoff=registry,
            x_session_id="tab-7",
        ))
        await oracle.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(registry) == 0
        assert registry.take("tab-7") is None
