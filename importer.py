"""
importer.py
===========

Turns pasted text or an uploaded file into the text sent to the parsing
service, and wraps the service call so that a failed import leaves the
dashboard untouched.

Text files are decoded as UTF-8 with a cp1251 fallback (Russian OCR and
1C exports are frequently saved in the legacy Cyrillic code page).  Excel
workbooks are flattened into tab-separated lines, one per non-empty row.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from config import Settings, get_settings
from gemini_service import ParsingServiceError, parse_and_analyze_data
from roster_agent import DashboardData

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = ("txt", "csv", "json", "xlsx")
TEXT_ENCODINGS = ("utf-8-sig", "cp1251")
IMPORT_ERROR_MESSAGE = "Не удалось обработать данные. Пожалуйста, проверьте формат или API ключ."


class UnsupportedFileError(ValueError):
    pass


class InputTooLargeError(ValueError):
    pass


@dataclass
class ImportResult:
    data: Optional[DashboardData] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None


def _extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def decode_text(raw: bytes) -> str:
    for encoding in TEXT_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    # cp1251 maps almost every byte; this is only reached for its few holes.
    return raw.decode("utf-8", errors="replace")


def workbook_to_text(raw: bytes) -> str:
    """
    Flatten an Excel workbook into tab-separated text.

    Parameters
    ----------
    raw : bytes
        Contents of an ``.xlsx`` file.

    Returns
    -------
    str
        One ``# <sheet>`` header per sheet followed by its non-empty rows,
        cells joined by tabs.  Trailing empty cells are dropped.
    """
    try:
        wb = openpyxl.load_workbook(io.BytesIO(raw), data_only=True, read_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
        raise UnsupportedFileError(f"Not a readable .xlsx workbook: {exc}") from exc
    lines: List[str] = []
    try:
        for ws in wb.worksheets:
            rows: List[str] = []
            for row in ws.iter_rows(values_only=True):
                cells = ["" if v is None else str(v).strip() for v in row]
                while cells and not cells[-1]:
                    cells.pop()
                if any(cells):
                    rows.append("\t".join(cells))
            if rows:
                lines.append(f"# {ws.title}")
                lines.extend(rows)
    finally:
        wb.close()
    return "\n".join(lines)


def read_uploaded_text(raw: bytes, filename: str) -> str:
    """Return the roster text contained in an uploaded file."""
    ext = _extension(filename)
    if ext not in ACCEPTED_EXTENSIONS:
        raise UnsupportedFileError(f"Unsupported file type '.{ext}' (expected one of {', '.join(ACCEPTED_EXTENSIONS)})")
    if ext == "xlsx":
        return workbook_to_text(raw)
    return decode_text(raw)


def load_roster_file(path: str) -> str:
    file_path = Path(path)
    return read_uploaded_text(file_path.read_bytes(), file_path.name)


def check_input_size(text: str, settings: Optional[Settings] = None) -> None:
    limit = (settings or get_settings()).max_input_chars
    if len(text) > limit:
        raise InputTooLargeError(f"Input is {len(text)} characters, limit is {limit}")


def can_submit(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def submit_text(
    text: str,
    parser: Callable[[str], DashboardData] = parse_and_analyze_data,
    settings: Optional[Settings] = None,
) -> ImportResult:
    """
    Send ``text`` through ``parser`` and report the outcome.

    A blank text is ignored (empty result, no error).  Parsing failures are
    logged and reported with a single user-facing message; the caller keeps
    its current dashboard state in that case.
    """
    if not can_submit(text):
        return ImportResult()
    settings = settings or get_settings()
    try:
        check_input_size(text, settings)
        data = parser(text)
    except (ParsingServiceError, InputTooLargeError) as exc:
        logger.error("Roster import failed: %s", exc)
        return ImportResult(error=IMPORT_ERROR_MESSAGE)
    return ImportResult(data=data)
