"""Text extraction from uploaded document bytes.

PDFs (detected by their ``%PDF`` magic bytes) are read page by page with
PyMuPDF; anything else must decode as UTF-8 text.  Pages with no text
layer are skipped, so a scanned PDF without OCR yields empty text and the
ingestion pipeline reports it as empty content.
"""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from virtuai.interfaces.text_extractor import ExtractedText, ITextExtractor
from virtuai.utils.errors import EmptyContentError

logger = structlog.get_logger(logger_name=__name__)

_PDF_MAGIC = b"%PDF"


class DocumentTextExtractor(ITextExtractor):
    """Extracts plain text from PDF or UTF-8 text bytes."""

    def extract(self, data: bytes) -> ExtractedText:
        if data[:1024].lstrip().startswith(_PDF_MAGIC):
            return self._extract_pdf(data)
        return self._extract_plain(data)

    def get_provider_name(self) -> str:
        return "pymupdf"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes) -> ExtractedText:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001
            logger.warning("pdf_open_failed", error=str(exc))
            raise EmptyContentError(
                message="Could not read this PDF", provider_name=self.get_provider_name()
            ) from exc

        pages: list[str] = []
        try:
            page_count = len(doc)
            title = (doc.metadata or {}).get("title") or None
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", pages=page_count)

        return ExtractedText(text="\n\n".join(pages), title=title, page_count=page_count)

    def _extract_plain(self, data: bytes) -> ExtractedText:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise EmptyContentError(
                message="Unsupported document format; upload a PDF or UTF-8 text file",
                provider_name="text",
            ) from exc
        return ExtractedText(text=text, title=None, page_count=0)
