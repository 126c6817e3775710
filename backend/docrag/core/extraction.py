"""Plain-text extraction for library documents."""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path

import docx
import pptx
from openpyxl import load_workbook
from pypdf import PdfReader

from ..errors import ExtractionError

# Office formats with no parser here; reading them as text would index raw bytes.
UNSUPPORTED_BINARY = frozenset({".doc", ".rtf", ".odt", ".ppt", ".xls"})

_HSPACE_RE = re.compile("[ \t\u00a0\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_NEEDS_QUOTE_RE = re.compile(r"[\s|:]")


def normalize_text(text: str) -> str:
    if not text:
        return ""
    t = text.replace("\r\n", "\n").replace("\r", "\n")
    t = _HSPACE_RE.sub(" ", t)
    t = _BLANK_LINES_RE.sub("\n\n", t)
    return t.strip()


class TextExtractor:
    """Turns a library file into plain text.

    Text-family files are read as UTF-8, CSV files are flattened row by row with
    their header names, and PDF / DOCX / PPTX / XLSX go through pypdf,
    python-docx, python-pptx and openpyxl. Legacy office formats raise
    ExtractionError.
    """

    def extract(self, file_path: str | Path) -> str:
        p = Path(file_path)
        ext = p.suffix.lower()

        if ext == ".pdf":
            return normalize_text(self._extract_pdf(p))
        if ext == ".docx":
            return normalize_text(self._extract_docx(p))
        if ext == ".pptx":
            return normalize_text(self._extract_pptx(p))
        if ext == ".xlsx":
            return normalize_text(self._extract_xlsx(p))
        if ext == ".csv":
            return normalize_text(self._extract_csv(p))
        if ext in UNSUPPORTED_BINARY:
            raise ExtractionError(f"No text extractor for {ext} files: {p.name}")

        try:
            return normalize_text(p.read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            raise ExtractionError(f"Failed to read {p.name}: {e}") from e

    def _extract_csv(self, path: Path) -> str:
        try:
            raw = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionError(f"Failed to read {path.name}: {e}") from e
        return flatten_csv(raw)

    def _extract_pdf(self, path: Path) -> str:
        try:
            reader = PdfReader(str(path))
            return "\n".join(page.extract_text() or "" for page in reader.pages)
        except Exception as e:
            raise ExtractionError(f"PDF parse failed for {path.name}: {e}") from e

    def _extract_docx(self, path: Path) -> str:
        try:
            document = docx.Document(str(path))
            return "\n".join(p.text for p in document.paragraphs if p.text)
        except Exception as e:
            raise ExtractionError(f"DOCX parse failed for {path.name}: {e}") from e

    def _extract_pptx(self, path: Path) -> str:
        try:
            prs = pptx.Presentation(str(path))
            text = []
            for slide in prs.slides:
                for shape in slide.shapes:
                    if getattr(shape, "has_text_frame", False) and shape.text_frame.text:
                        text.append(shape.text_frame.text)
            return "\n".join(text)
        except Exception as e:
            raise ExtractionError(f"PPTX parse failed for {path.name}: {e}") from e

    def _extract_xlsx(self, path: Path) -> str:
        try:
            wb = load_workbook(str(path), read_only=True, data_only=True)
        except Exception as e:
            raise ExtractionError(f"XLSX parse failed for {path.name}: {e}") from e
        try:
            text = []
            for ws in wb.worksheets:
                text.append(f"Sheet: {ws.title}")
                for row in ws.iter_rows(values_only=True):
                    cells = ["" if cell is None else str(cell) for cell in row]
                    if any(cells):
                        text.append(" | ".join(cells))
            return "\n".join(text)
        except Exception as e:
            raise ExtractionError(f"XLSX parse failed for {path.name}: {e}") from e
        finally:
            wb.close()


def sniff_delimiter(header_line: str) -> str:
    counts = {d: header_line.count(d) for d in (",", ";", "\t", "|")}
    best = max(counts.values())
    # ties resolve in this order
    for d in (";", "\t", "|"):
        if counts[d] == best and best > 0:
            return d
    return ","


def _quote_if_needed(value: str) -> str:
    s = (value or "").strip()
    if not s or _NEEDS_QUOTE_RE.search(s):
        return '"' + s.replace('"', '\\"') + '"'
    return s


def flatten_csv(raw: str) -> str:
    """Render CSV rows as ``row N: header=value | header=value`` lines."""
    if not raw.strip():
        return ""
    first_line = raw.splitlines()[0]
    reader = csv.reader(io.StringIO(raw), delimiter=sniff_delimiter(first_line), skipinitialspace=True)
    rows = iter(reader)
    headers = [h.strip() for h in next(rows, [])]

    out = []
    for n, row in enumerate(rows, start=1):
        cells = []
        for i, h in enumerate(headers):
            value = row[i] if i < len(row) else ""
            cells.append(f"{h}={_quote_if_needed(value)}")
        out.append(f"row {n}: " + " | ".join(cells))
    return "\n".join(out) + ("\n" if out else "")
