import io
import re
import logging
import asyncio
from html import escape
from typing import Awaitable, Callable, Optional, Protocol

import fitz  # PyMuPDF

from mindmap_engine.schemas.mindmap import MindmapTree
from mindmap_engine.schemas.results import ExportResult, ShareResult

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# EXPORT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class DocumentExporter(Protocol):
    async def export(self, tree: MindmapTree) -> bytes:
        ...


class PdfOutlineExporter:
    """
    Writes the tree as an indented outline with PyMuPDF's HTML Story layout,
    which shapes non-Latin and right-to-left labels with fallback fonts and
    flows long outlines onto as many A4 pages as needed.
    """

    MARGIN = 50
    INDENT = 18
    CSS = """
        * { font-family: sans-serif; }
        h1 { font-size: 16px; margin: 0 0 8px 0; }
        p { margin: 0 0 4px 0; }
        .root { font-size: 13px; font-weight: bold; }
        .node { font-size: 11px; }
        .description { font-size: 9px; color: #555555; }
    """

    def _html(self, tree: MindmapTree) -> str:
        parts = [f"<h1>{escape(tree.title)}</h1>"]
        for node in tree.walk():
            indent = node.level * self.INDENT
            if node.level == 0:
                parts.append(f'<p class="root">{escape(node.text)}</p>')
            else:
                parts.append(
                    f'<p class="node" style="margin-left: {indent}px">• {escape(node.text)}</p>'
                )
            if node.description:
                parts.append(
                    f'<p class="description" style="margin-left: {indent + self.INDENT}px">'
                    f"{escape(node.description)}</p>"
                )
        return "\n".join(parts)

    def _render(self, tree: MindmapTree) -> bytes:
        buffer = io.BytesIO()
        story = fitz.Story(html=self._html(tree), user_css=self.CSS)
        writer = fitz.DocumentWriter(buffer)
        mediabox = fitz.paper_rect("a4")
        where = mediabox + (self.MARGIN, self.MARGIN, -self.MARGIN, -self.MARGIN)

        more = 1
        while more:
            device = writer.begin_page(mediabox)
            more, _ = story.place(where)
            story.draw(device)
            writer.end_page()
        writer.close()
        return buffer.getvalue()

    async def export(self, tree: MindmapTree) -> bytes:
        return await asyncio.to_thread(self._render, tree)


def export_filename(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return f"{slug or 'mind-map'}.pdf"


class ExportCoordinator:
    def __init__(self, exporter: Optional[DocumentExporter] = None):
        self.exporter = exporter

    async def export_as_document(self, tree: MindmapTree) -> ExportResult:
        if self.exporter is None:
            return ExportResult(success=False, error="Document export is not supported yet.")

        try:
            content = await self.exporter.export(tree)
        except Exception as e:
            logger.error(f"[EXPORT] '{tree.title}' failed: {e}", exc_info=True)
            return ExportResult(success=False, error=f"There was an error exporting your mind map: {e}")

        logger.info(f"[EXPORT] ✓ '{tree.title}' — {len(content)} bytes")
        return ExportResult(success=True, filename=export_filename(tree.title), content=content)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SHARE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class NativeShare(Protocol):
    available: bool

    async def share(self, title: str, text: str, url: str) -> None:
        ...


Clipboard = Callable[[str], Awaitable[None]]


class ClientClipboard:
    """Records the text the client should copy; the copy itself happens client-side."""

    def __init__(self):
        self.copied: Optional[str] = None

    async def __call__(self, text: str) -> None:
        self.copied = text


class ShareCoordinator:
    def __init__(self, clipboard: Clipboard, native: Optional[NativeShare] = None):
        self.clipboard = clipboard
        self.native = native

    async def share_link(self, title: str, url: str) -> ShareResult:
        if self.native is not None and self.native.available:
            try:
                await self.native.share(title, f"Check out this mind map: {title}", url)
                logger.info(f"[SHARE] ✓ native share for '{title}'")
                return ShareResult(delivered_via="native-share", url=url)
            except Exception as e:
                logger.warning(f"[SHARE] Native share failed ({e}); copying link instead")

        try:
            await self.clipboard(url)
        except Exception as e:
            # Copy failures belong to the platform; the fallback still counts as delivered.
            logger.warning(f"[SHARE] Clipboard copy reported an error: {e}")
        return ShareResult(delivered_via="clipboard-fallback", url=url)
