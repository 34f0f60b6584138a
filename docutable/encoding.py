import base64
import logging
import mimetypes
import os

import pymupdf

from docutable.models import Session, SourceFile, UploadedItem
from docutable.session import add_items

MAX_FILE_SIZE = 10 * 1024 * 1024
ACCEPTED_MEDIA_TYPES = ("image/png", "image/jpeg", "application/pdf")
# Extensions offered by the file picker
ACCEPTED_EXTENSIONS = ["png", "jpg", "jpeg", "pdf"]


def encode_file(data: bytes, media_type: str) -> str:
    """
    Encode raw file bytes as a data URL.

    The result is sent to the extraction service (after the prefix is
    stripped) and is also usable directly as an inline preview source.

    Parameters:
        data (bytes): Raw file content
        media_type (str): Declared media type, e.g. 'application/pdf'

    Returns:
        str: 'data:<media_type>;base64,<payload>'
    """
    encoded = base64.b64encode(data).decode("utf-8")
    return f"data:{media_type};base64,{encoded}"


def strip_data_url_prefix(payload: str) -> str:
    """Return the base64 part of a data URL; plain base64 is returned unchanged."""
    _, sep, data = payload.partition(",")
    return data if sep else payload


def guess_media_type(name: str) -> str:
    media_type, _ = mimetypes.guess_type(name)
    return media_type or "application/octet-stream"


def read_source(upload) -> SourceFile:
    """
    Read an upload into a SourceFile.

    Accepts a Streamlit UploadedFile (anything with ``getvalue()``, ``name``
    and ``type``) or a local file path.
    """
    if isinstance(upload, (str, os.PathLike)):
        path = os.fspath(upload)
        with open(path, "rb") as f:
            data = f.read()
        name = os.path.basename(path)
        media_type = guess_media_type(name)
    else:
        data = upload.getvalue()
        name = upload.name
        media_type = getattr(upload, "type", None) or guess_media_type(name)
    return SourceFile(name=name, media_type=media_type, size=len(data), data=data)


def upload_size(upload) -> int | None:
    """Size reported by the upload before reading it, if it reports one."""
    if isinstance(upload, (str, os.PathLike)):
        try:
            return os.path.getsize(upload)
        except OSError:
            return None
    size = getattr(upload, "size", None)
    return size if isinstance(size, int) else None


def ingest(session: Session, uploads) -> Session:
    """
    Turn a file selection into idle session items.

    Files at or over MAX_FILE_SIZE and files that cannot be read are logged
    and skipped; the rest of the batch is unaffected. If nothing was active
    before, the first new item becomes active.
    """
    new_items = []
    for upload in uploads:
        label = getattr(upload, "name", upload)
        size = upload_size(upload)
        if size is not None and size >= MAX_FILE_SIZE:
            logging.warning(f"File {label} skipped: too large ({size} bytes).")
            continue
        try:
            source = read_source(upload)
        except Exception as e:
            logging.error(f"Failed to read {label}: {e}")
            continue
        if source.size >= MAX_FILE_SIZE:
            logging.warning(f"File {source.name} skipped: too large ({source.size} bytes).")
            continue
        if source.media_type not in ACCEPTED_MEDIA_TYPES:
            logging.warning(f"File {source.name} has unsupported type {source.media_type}; extraction may fail.")

        new_items.append(
            UploadedItem(
                source=source,
                payload=encode_file(source.data, source.media_type),
                media_type=source.media_type,
            )
        )
        logging.info(f"Added {source.name} ({source.media_type}, {source.size} bytes)")

    return add_items(session, new_items)


def pdf_page_count(data: bytes) -> int:
    doc = pymupdf.open(stream=data, filetype="pdf")
    try:
        return doc.page_count
    finally:
        doc.close()


def render_pdf_page(data: bytes, page_no: int = 0, dpi: int = 144, image_type: str = "png") -> bytes:
    """
    Render one PDF page to an image for the preview pane.

    Parameters:
        data (bytes): PDF file content
        page_no (int): Page number (0-indexed)
        dpi (int): Resolution in dots per inch
        image_type (str): Image file format ('png', 'jpeg', etc.)

    Returns:
        bytes: Encoded image
    """
    doc = pymupdf.open(stream=data, filetype="pdf")
    try:
        if page_no >= doc.page_count or page_no < 0:
            raise ValueError(f"Page number {page_no} out of range. Total pages: {doc.page_count}")
        zoom_factor = dpi / 72
        pix = doc[page_no].get_pixmap(matrix=pymupdf.Matrix(zoom_factor, zoom_factor))
        return pix.tobytes(image_type)
    finally:
        doc.close()
