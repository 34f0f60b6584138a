"""
Session state for uploaded documents.

Every change produces a new :class:`~docutable.models.Session`; nothing is
mutated in place. Updates are applied by merging into the item with a given
id, so an update for an item that has since been removed is simply dropped.
"""
import asyncio
import logging

from docutable.models import ItemStatus, Session

EXTRACTION_ERROR_MESSAGE = "Failed to extract data. Please ensure the file contains visible tables."


def add_items(session: Session, items) -> Session:
    items = tuple(items)
    if not items:
        return session
    active_id = session.active_id if session.active is not None else items[0].id
    return session.model_copy(update={"items": session.items + items, "active_id": active_id})


def update_item(session: Session, item_id: str, **changes) -> Session:
    """Merge ``changes`` into the item with ``item_id``; unknown ids leave the session unchanged."""
    if session.get(item_id) is None:
        return session
    items = tuple(item.model_copy(update=changes) if item.id == item_id else item for item in session.items)
    return session.model_copy(update={"items": items})


def remove_item(session: Session, item_id: str) -> Session:
    items = tuple(item for item in session.items if item.id != item_id)
    if len(items) == len(session.items):
        return session
    active_id = session.active_id
    if active_id == item_id:
        active_id = items[0].id if items else None
    return Session(items=items, active_id=active_id)


def select_item(session: Session, item_id: str) -> Session:
    if session.get(item_id) is None:
        return session
    return session.model_copy(update={"active_id": item_id})


def reset() -> Session:
    return Session()


def start_extraction(session: Session, item_id: str) -> Session:
    return update_item(session, item_id, status=ItemStatus.PROCESSING, error=None)


def complete_extraction(session: Session, item_id: str, tables) -> Session:
    return update_item(session, item_id, status=ItemStatus.COMPLETE, tables=tuple(tables), error=None)


def fail_extraction(session: Session, item_id: str, message: str = EXTRACTION_ERROR_MESSAGE) -> Session:
    return update_item(session, item_id, status=ItemStatus.ERROR, error=message)


class SessionStore:
    """
    Holds the current Session and swaps it wholesale on every change.

    The Streamlit app keeps one store in ``st.session_state``; the CLI makes
    its own.
    """

    def __init__(self, session: Session | None = None):
        self._session = session if session is not None else Session()

    @property
    def session(self) -> Session:
        return self._session

    def apply(self, func, *args, **kwargs) -> Session:
        """Replace the session with ``func(session, *args, **kwargs)`` and return it."""
        self._session = func(self._session, *args, **kwargs)
        return self._session


async def extract_item(store: SessionStore, item_id: str, extractor) -> None:
    """
    Run one extraction for an item and merge the outcome back by id.

    ``extractor`` is an async callable ``(payload, media_type) -> tables``
    that raises on failure. Works for idle items and for re-extraction of
    complete or failed ones; a successful run replaces the previous tables.
    """
    item = store.session.get(item_id)
    if item is None:
        logging.warning(f"Extraction requested for unknown item {item_id}")
        return

    store.apply(start_extraction, item_id)
    logging.info(f"Extracting tables from {item.name}")

    try:
        tables = await extractor(item.payload, item.media_type)
    except Exception as e:
        logging.error(f"Extraction failed for {item.name}: {e}")
        store.apply(fail_extraction, item_id)
        return

    if store.session.get(item_id) is None:
        logging.info(f"{item.name} was removed during extraction; discarding {len(tables)} table(s)")
        return

    store.apply(complete_extraction, item_id, tables)
    logging.info(f"Extraction complete for {item.name}: {len(tables)} table(s)")


async def extract_items(store: SessionStore, item_ids, extractor, max_concurrency: int = 4) -> None:
    """Extract several items concurrently, at most ``max_concurrency`` requests at a time."""
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def one(item_id):
        async with semaphore:
            await extract_item(store, item_id, extractor)

    await asyncio.gather(*(one(item_id) for item_id in item_ids))
