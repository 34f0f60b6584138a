import re

from docutable.models import ExtractedTable

FALLBACK_FILENAME = "extracted_data"
FALLBACK_SHEET_NAME = "Sheet1"
PART_NUMBER_HEADERS = ("assembly part no.", "assembly part no")
# Leaves room for a collision suffix and extension within a 255 byte file name
MAX_STEM_LENGTH = 200


def preferred_filename(table: ExtractedTable) -> str:
    """
    Pick the unsanitized base name for a table's export file.

    Parts lists name their file after the first row's "Assembly Part No."
    value when there is one; everything else uses the table title.
    """
    filename = table.title or FALLBACK_FILENAME

    part_no_index = next(
        (i for i, header in enumerate(table.headers) if header.strip().lower() in PART_NUMBER_HEADERS),
        None,
    )
    if part_no_index is not None and table.rows:
        first_row = table.rows[0]
        cell = first_row[part_no_index] if part_no_index < len(first_row) else ""
        if cell and cell.strip():
            filename = cell.strip()

    return filename


def sanitize_filename(name: str) -> str:
    """
    Replace anything but letters, digits, whitespace, '-', '_' and '.' with '_',
    collapse whitespace to '_' and cap the result at MAX_STEM_LENGTH characters.
    """
    safe = re.sub(r"[^A-Za-z0-9\s\-_.]", "_", name)
    return re.sub(r"\s+", "_", safe)[:MAX_STEM_LENGTH]


def resolve_filename(table: ExtractedTable) -> str:
    return sanitize_filename(preferred_filename(table))


def unique_filename(name: str, used: set[str]) -> str:
    """
    Return ``name`` or ``name_N`` with the smallest unused N >= 1, and record it in ``used``.
    """
    filename = name
    if filename in used:
        counter = 1
        while f"{name}_{counter}" in used:
            counter += 1
        filename = f"{name}_{counter}"
    used.add(filename)
    return filename


def sanitize_worksheet_name(name):
    """
    Sanitize Excel worksheet names by removing characters that are not allowed.

    Excel worksheet naming rules:
    - Can't exceed 31 characters
    - Can't contain: [ ] : * ? / \\
    - Can't be 'History' as it's a reserved name

    Args:
        name (str): The table title, possibly empty

    Returns:
        str: Sanitized worksheet name safe for Excel
    """
    sanitized = re.sub(r"[\[\]:*?/\\]", "", str(name or FALLBACK_SHEET_NAME))[:31]

    if not sanitized.strip() or sanitized.lower() == "history":
        sanitized = FALLBACK_SHEET_NAME

    return sanitized
