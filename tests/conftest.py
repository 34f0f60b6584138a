"""Pytest configuration and shared fixtures."""
import base64
import json

import pymupdf
import pytest
from unittest.mock import MagicMock, AsyncMock
from openai import AsyncOpenAI

from docutable.models import ExtractedTable, Session, SourceFile, UploadedItem
from docutable.encoding import encode_file


class FakeUpload:
    """Stand-in for a Streamlit UploadedFile."""

    def __init__(self, name, data, type="image/png", size=None):
        self.name = name
        self.type = type
        self.size = len(data) if size is None else size
        self._data = data

    def getvalue(self):
        return self._data


class BrokenUpload(FakeUpload):
    def getvalue(self):
        raise OSError("read failed")


@pytest.fixture
def png_bytes():
    """A 1x1 pixel transparent PNG."""
    return base64.b64decode(
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
    )


@pytest.fixture
def pdf_bytes():
    """A two-page PDF built with PyMuPDF."""
    doc = pymupdf.open()
    for page_no in range(2):
        page = doc.new_page()
        page.insert_text((72, 72), f"Parts list page {page_no + 1}")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def sample_table():
    return ExtractedTable(
        title="Page 1 - Invoice",
        headers=["Item", "Qty", "Price"],
        rows=[["Widget", "007", "10.50"], ["Gadget", "2", "1,200.00"]],
    )


@pytest.fixture
def parts_table():
    return ExtractedTable(
        title="Page 2 - Parts List",
        headers=["Assembly Part No.", "Qty"],
        rows=[["PN-004", "2"], ["PN-005", "1"]],
    )


@pytest.fixture
def make_item(png_bytes):
    def _make(name="scan.png", data=None, media_type="image/png", **changes):
        data = png_bytes if data is None else data
        source = SourceFile(name=name, media_type=media_type, size=len(data), data=data)
        item = UploadedItem(source=source, payload=encode_file(data, media_type), media_type=media_type)
        return item.model_copy(update=changes) if changes else item

    return _make


@pytest.fixture
def two_item_session(make_item):
    first = make_item("first.png")
    second = make_item("second.png")
    return Session(items=(first, second), active_id=first.id)


@pytest.fixture
def mock_openai_client():
    """Create a mock AsyncOpenAI client."""
    client = MagicMock(spec=AsyncOpenAI)
    client.beta = MagicMock()
    client.beta.chat = MagicMock()
    client.beta.chat.completions = MagicMock()
    return client


@pytest.fixture
def make_response():
    """Build a mock chat completion whose message carries ``content``."""

    def _make(content, refusal=None):
        message = MagicMock()
        message.content = content
        message.refusal = refusal
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message = message
        return response

    return _make


@pytest.fixture
def tables_json(sample_table, parts_table):
    return json.dumps({"tables": [sample_table.model_dump(), parts_table.model_dump()]})


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Setup test environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-api-key-123")
    monkeypatch.setenv("MAX_CONCURRENCY", "4")
