import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ItemStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class ExtractedTable(BaseModel):
    """One table returned by the extraction service. Rows may be ragged."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(default="", alias="tableTitle")
    headers: list[str]
    rows: list[list[str]]


class SourceFile(BaseModel):
    """The raw upload as read from the file picker or from disk."""

    model_config = ConfigDict(frozen=True)

    name: str
    media_type: str
    size: int
    data: bytes = Field(repr=False)


class UploadedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source: SourceFile
    # data:<media type>;base64,<bytes>
    payload: str = Field(repr=False)
    media_type: str
    status: ItemStatus = ItemStatus.IDLE
    tables: tuple[ExtractedTable, ...] | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        return self.source.name


class Session(BaseModel):
    """
    Ordered uploaded items plus the id of the item shown in the preview.

    Sessions are never mutated; the functions in ``docutable.session`` return
    a new Session for every change.
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[UploadedItem, ...] = ()
    active_id: str | None = None

    def get(self, item_id: str | None) -> UploadedItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def active(self) -> UploadedItem | None:
        return self.get(self.active_id)

    def __len__(self) -> int:
        return len(self.items)
