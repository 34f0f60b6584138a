import pandas as pd

from docutable.models import ExtractedTable, ItemStatus, UploadedItem


def table_to_dataframe(table: ExtractedTable) -> pd.DataFrame:
    """
    Build a display DataFrame for a table.

    Short rows are padded with empty strings and rows longer than the header
    get extra "Column N" headers. Only the preview does this; exports keep
    rows as extracted.
    """
    width = max([len(table.headers)] + [len(row) for row in table.rows])
    headers = list(table.headers) + [f"Column {i + 1}" for i in range(len(table.headers), width)]

    # st.dataframe needs unique column labels
    seen = {}
    columns = []
    for header in headers:
        if header in seen:
            seen[header] += 1
            columns.append(f"{header} ({seen[header]})")
        else:
            seen[header] = 0
            columns.append(header)

    rows = [list(row) + [""] * (width - len(row)) for row in table.rows]
    return pd.DataFrame(rows, columns=columns, dtype=object)


def clamp_table_index(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return min(max(index, 0), count - 1)


def table_heading(table: ExtractedTable, index: int) -> str:
    return table.title or f"Table {index + 1}"


def status_label(item: UploadedItem) -> str | None:
    if item.status == ItemStatus.PROCESSING:
        return "Analyzing document..."
    if item.status == ItemStatus.COMPLETE:
        count = len(item.tables or ())
        return f"{count} Files Extracted" if count > 1 else "Extraction Complete"
    if item.status == ItemStatus.ERROR:
        return item.error or "An error occurred."
    return None


def download_label(tables) -> str:
    return "Download ZIP" if len(tables) > 1 else "Export Excel"
