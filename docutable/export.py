import io
import logging
import os
import re
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from docutable.models import ExtractedTable
from docutable.naming import MAX_STEM_LENGTH, resolve_filename, sanitize_worksheet_name, unique_filename

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ZIP_MIME = "application/zip"
FALLBACK_ARCHIVE_NAME = "extracted_tables"

# Control characters that cannot be stored in an xlsx cell
_ILLEGAL_CHARS_RE = re.compile(r"[\x00-\x08\x0B-\x0C\x0E-\x1F]")


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    data: bytes
    mime_type: str


def _clean_cell(value):
    return _ILLEGAL_CHARS_RE.sub("", value) if isinstance(value, str) else value


def workbook_bytes(table: ExtractedTable) -> bytes:
    """
    Write one table to a single-sheet xlsx workbook in memory.

    Row 1 holds the headers and each data row follows from column A. Cells
    are written as text exactly as extracted, including values that look like
    formulas; ragged rows are written as they are, without padding or
    truncation.
    """
    sheet_rows = [list(table.headers)] + [list(row) for row in table.rows]
    df = pd.DataFrame(sheet_rows, dtype=object).map(_clean_cell)
    sheet_name = sanitize_worksheet_name(table.title)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        # openpyxl stores any str starting with "=" as a formula
        for row in writer.sheets[sheet_name].iter_rows():
            for cell in row:
                if isinstance(cell.value, str):
                    cell.data_type = "s"
    return buffer.getvalue()


def excel_filename(table: ExtractedTable) -> str:
    filename = resolve_filename(table)
    if not filename.lower().endswith(".xlsx"):
        filename += ".xlsx"
    return filename


def archive_name(base_name: str) -> str:
    """Name the zip after the source file: 'scan.v2.pdf' -> 'scan_tables.zip'."""
    stem = base_name.split(".")[0][:MAX_STEM_LENGTH] or FALLBACK_ARCHIVE_NAME
    return f"{stem}_tables.zip"


def build_export(tables, base_name: str = "export") -> ExportArtifact | None:
    """
    Build the downloadable artifact for an item's tables.

    Parameters:
        tables (Sequence[ExtractedTable]): Tables in document order
        base_name (str): Name of the source file, used to name a zip archive

    Returns:
        ExportArtifact | None: One xlsx for a single table, a zip of one xlsx
        per table otherwise, or None when there is nothing to export
    """
    tables = list(tables)
    if not tables:
        logging.info("No tables to export.")
        return None

    try:
        if len(tables) == 1:
            table = tables[0]
            artifact = ExportArtifact(excel_filename(table), workbook_bytes(table), XLSX_MIME)
        else:
            used_filenames: set[str] = set()
            zip_buffer = io.BytesIO()
            with zipfile.ZipFile(zip_buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
                for table in tables:
                    filename = unique_filename(resolve_filename(table), used_filenames)
                    zip_file.writestr(f"{filename}.xlsx", workbook_bytes(table))
            artifact = ExportArtifact(archive_name(base_name), zip_buffer.getvalue(), ZIP_MIME)
    except Exception as e:
        logging.error(f"Error building export for '{base_name}': {e}")
        raise

    logging.info(f"Built export '{artifact.filename}' ({len(tables)} table(s), {len(artifact.data)} bytes)")
    return artifact


def save_export(artifact: ExportArtifact, directory) -> Path:
    """
    Write an artifact into ``directory``.

    The bytes go to a temporary file first and are renamed into place, so a
    failed write never leaves a partial file behind.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / artifact.filename

    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as tmp_file:
            tmp_file.write(artifact.data)
        os.replace(tmp_path, target)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logging.info(f"Export written to {target}")
    return target
