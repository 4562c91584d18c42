"""PDF discovery and text extraction.

Two backends are supported:

* ``pdftotext`` (poppler) run as a subprocess, with an ``ocrmypdf`` pass
  when the PDF has no text layer. This is the default.
* ``pypdf`` through LangChain's ``PyPDFLoader`` for hosts without poppler.
  It has no OCR fallback.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pharma_rag.exceptions import ExtractionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedText:
    """Text pulled out of one PDF and how it was obtained."""

    text: str
    ocr_applied: bool = False


def list_pdfs(data_dir: str | Path) -> list[Path]:
    """Return the PDF files directly inside *data_dir*, sorted by name."""
    root = Path(data_dir)
    return sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() == ".pdf")


async def _run(args: list[str], *, timeout: float) -> bytes:
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    if proc.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()
        raise RuntimeError(f"{args[0]} exited with status {proc.returncode}: {message}")
    return stdout


class PdfTextExtractor:
    """Extract text from PDFs, falling back to OCR for scanned files.

    Parameters
    ----------
    backend:
        ``"pdftotext"`` or ``"pypdf"``.
    pdftotext_path / ocrmypdf_path:
        Executables used by the ``pdftotext`` backend.
    ocr_enabled:
        Whether to try OCR when the text layer is empty.
    timeout:
        Seconds allowed for each subprocess.
    """

    def __init__(
        self,
        *,
        backend: str = "pdftotext",
        pdftotext_path: str = "pdftotext",
        ocrmypdf_path: str = "ocrmypdf",
        ocr_enabled: bool = True,
        timeout: float = 300.0,
    ) -> None:
        if backend not in ("pdftotext", "pypdf"):
            raise ValueError(f"Unsupported PDF backend: {backend!r}")
        self.backend = backend
        self._pdftotext = pdftotext_path
        self._ocrmypdf = ocrmypdf_path
        self._ocr_enabled = ocr_enabled
        self._timeout = timeout

    async def extract(self, path: str | Path) -> ExtractedText:
        """Return the text of *path*.

        Raises
        ------
        ExtractionError
            When neither the text layer nor OCR yields any text.
        """
        path = Path(path)
        if self.backend == "pypdf":
            text = await self._pypdf(path)
            if not text.strip():
                raise ExtractionError(path.name, "no text layer")
            return ExtractedText(text)

        text = ""
        try:
            text = await self._pdftotext_file(path)
        except (OSError, RuntimeError, asyncio.TimeoutError) as exc:
            logger.warning("pdftotext failed for %s: %s", path.name, exc)

        if text.strip():
            return ExtractedText(text)

        if not self._ocr_enabled:
            raise ExtractionError(path.name, "no text layer and OCR is disabled")

        try:
            text = await self._ocr(path)
        except (OSError, RuntimeError, asyncio.TimeoutError) as exc:
            raise ExtractionError(path.name, f"OCR failed: {exc}") from exc
        if not text.strip():
            raise ExtractionError(path.name, "no text extracted even after OCR")
        logger.info("OCR applied to %s", path.name)
        return ExtractedText(text, ocr_applied=True)

    async def _pdftotext_file(self, path: Path) -> str:
        out = await _run(
            [self._pdftotext, "-enc", "UTF-8", "-layout", str(path), "-"],
            timeout=self._timeout,
        )
        # Undecodable bytes become lone surrogates, removed later by clean_text.
        return out.decode("utf-8", errors="surrogateescape")

    async def _ocr(self, path: Path) -> str:
        with tempfile.TemporaryDirectory(prefix="pharma-rag-ocr-") as tmp:
            ocr_path = Path(tmp) / f"{path.stem}.ocr.pdf"
            await _run(
                [
                    self._ocrmypdf,
                    "--deskew",
                    "--optimize",
                    "1",
                    "--force-ocr",
                    str(path),
                    str(ocr_path),
                ],
                timeout=self._timeout,
            )
            return await self._pdftotext_file(ocr_path)

    async def _pypdf(self, path: Path) -> str:
        from langchain_community.document_loaders import PyPDFLoader

        try:
            pages = await asyncio.to_thread(PyPDFLoader(str(path)).load)
        except Exception as exc:
            raise ExtractionError(path.name, f"pypdf failed: {exc}") from exc
        return "\n".join(page.page_content for page in pages)
