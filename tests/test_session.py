"""Unit tests for session.py module."""
import asyncio

import pytest
from unittest.mock import AsyncMock

from docutable.extraction import ExtractionError
from docutable.models import ExtractedTable, ItemStatus, Session
from docutable.session import (
    EXTRACTION_ERROR_MESSAGE,
    SessionStore,
    add_items,
    complete_extraction,
    extract_item,
    extract_items,
    fail_extraction,
    remove_item,
    reset,
    select_item,
    start_extraction,
    update_item,
)


class TestPureUpdates:
    """Test the session update functions."""

    def test_add_items_sets_first_active(self, make_item):
        item = make_item()
        session = add_items(Session(), [item])
        assert session.items == (item,)
        assert session.active_id == item.id

    def test_add_items_keeps_order(self, two_item_session, make_item):
        third = make_item("third.png")
        session = add_items(two_item_session, [third])
        assert [i.name for i in session.items] == ["first.png", "second.png", "third.png"]
        assert session.active_id == two_item_session.active_id

    def test_updates_do_not_mutate(self, two_item_session):
        first = two_item_session.items[0]
        updated = update_item(two_item_session, first.id, status=ItemStatus.PROCESSING)
        assert two_item_session.items[0].status == ItemStatus.IDLE
        assert updated.items[0].status == ItemStatus.PROCESSING
        assert updated.items[1] is two_item_session.items[1]

    def test_update_unknown_id_is_noop(self, two_item_session):
        assert update_item(two_item_session, "missing", status=ItemStatus.ERROR) is two_item_session

    def test_remove_active_selects_first_remaining(self, two_item_session):
        first, second = two_item_session.items
        session = remove_item(two_item_session, first.id)
        assert session.items == (second,)
        assert session.active_id == second.id

    def test_remove_inactive_keeps_selection(self, two_item_session):
        first, second = two_item_session.items
        session = remove_item(two_item_session, second.id)
        assert session.active_id == first.id

    def test_remove_last_item(self, make_item):
        item = make_item()
        session = remove_item(add_items(Session(), [item]), item.id)
        assert session.items == ()
        assert session.active_id is None

    def test_remove_unknown_id(self, two_item_session):
        assert remove_item(two_item_session, "missing") is two_item_session

    def test_select_item(self, two_item_session):
        second = two_item_session.items[1]
        assert select_item(two_item_session, second.id).active == second

    def test_select_unknown_id(self, two_item_session):
        assert select_item(two_item_session, "missing") is two_item_session

    def test_reset(self):
        session = reset()
        assert session.items == ()
        assert session.active_id is None


class TestStateTransitions:
    """Test the per-item state machine."""

    def test_idle_to_processing_to_complete(self, two_item_session, sample_table):
        item_id = two_item_session.items[0].id
        session = start_extraction(two_item_session, item_id)
        assert session.get(item_id).status == ItemStatus.PROCESSING
        session = complete_extraction(session, item_id, [sample_table])
        item = session.get(item_id)
        assert item.status == ItemStatus.COMPLETE
        assert item.tables == (sample_table,)
        assert item.error is None

    def test_processing_to_error(self, two_item_session):
        item_id = two_item_session.items[0].id
        session = fail_extraction(start_extraction(two_item_session, item_id), item_id)
        item = session.get(item_id)
        assert item.status == ItemStatus.ERROR
        assert item.error == EXTRACTION_ERROR_MESSAGE

    def test_retry_clears_error(self, two_item_session):
        item_id = two_item_session.items[0].id
        session = fail_extraction(two_item_session, item_id)
        session = start_extraction(session, item_id)
        assert session.get(item_id).status == ItemStatus.PROCESSING
        assert session.get(item_id).error is None


class TestSessionStore:
    """Test the store that swaps sessions."""

    def test_starts_empty(self):
        assert SessionStore().session == Session()

    def test_apply_swaps_session(self, two_item_session):
        store = SessionStore(two_item_session)
        before = store.session
        after = store.apply(remove_item, before.items[0].id)
        assert store.session is after
        assert len(before.items) == 2
        assert len(after.items) == 1


@pytest.mark.asyncio
class TestExtractItem:
    """Test extraction orchestration."""

    async def test_success(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        item = two_item_session.items[0]
        extractor = AsyncMock(return_value=[sample_table])

        await extract_item(store, item.id, extractor)

        extractor.assert_awaited_once_with(item.payload, item.media_type)
        assert store.session.get(item.id).status == ItemStatus.COMPLETE
        assert store.session.get(item.id).tables == (sample_table,)
        assert store.session.items[1].status == ItemStatus.IDLE

    async def test_processing_while_in_flight(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        item_id = two_item_session.items[0].id
        seen = []

        async def extractor(payload, media_type):
            seen.append(store.session.get(item_id).status)
            return [sample_table]

        await extract_item(store, item_id, extractor)
        assert seen == [ItemStatus.PROCESSING]

    async def test_failure_sets_error(self, two_item_session):
        store = SessionStore(two_item_session)
        item_id = two_item_session.items[0].id

        await extract_item(store, item_id, AsyncMock(side_effect=ExtractionError("no content from service")))

        item = store.session.get(item_id)
        assert item.status == ItemStatus.ERROR
        assert item.error == EXTRACTION_ERROR_MESSAGE
        assert item.tables is None

    async def test_reextraction_replaces_tables(self, two_item_session, sample_table, parts_table):
        store = SessionStore(two_item_session)
        item_id = two_item_session.items[0].id

        await extract_item(store, item_id, AsyncMock(return_value=[sample_table, parts_table]))
        await extract_item(store, item_id, AsyncMock(return_value=[parts_table]))

        assert store.session.get(item_id).tables == (parts_table,)

    async def test_retry_after_error(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        item_id = two_item_session.items[0].id

        await extract_item(store, item_id, AsyncMock(side_effect=ExtractionError("offline")))
        await extract_item(store, item_id, AsyncMock(return_value=[sample_table]))

        item = store.session.get(item_id)
        assert item.status == ItemStatus.COMPLETE
        assert item.error is None

    async def test_failed_reextraction_keeps_previous_tables(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        item_id = two_item_session.items[0].id

        await extract_item(store, item_id, AsyncMock(return_value=[sample_table]))
        await extract_item(store, item_id, AsyncMock(side_effect=ExtractionError("offline")))

        item = store.session.get(item_id)
        assert item.status == ItemStatus.ERROR
        assert item.tables == (sample_table,)

    async def test_unknown_item(self, two_item_session):
        store = SessionStore(two_item_session)
        extractor = AsyncMock()

        await extract_item(store, "missing", extractor)

        extractor.assert_not_awaited()
        assert store.session is two_item_session

    async def test_removed_while_in_flight(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        first, second = two_item_session.items
        release = asyncio.Event()

        async def extractor(payload, media_type):
            await release.wait()
            return [sample_table]

        task = asyncio.create_task(extract_item(store, first.id, extractor))
        await asyncio.sleep(0)
        store.apply(remove_item, first.id)
        after_removal = store.session
        release.set()
        await task

        assert store.session is after_removal
        assert store.session.items == (second,)

    async def test_removed_while_in_flight_and_failing(self, two_item_session):
        store = SessionStore(two_item_session)
        first = two_item_session.items[0]
        release = asyncio.Event()

        async def extractor(payload, media_type):
            await release.wait()
            raise ExtractionError("offline")

        task = asyncio.create_task(extract_item(store, first.id, extractor))
        await asyncio.sleep(0)
        store.apply(lambda _: reset())
        release.set()
        await task

        assert store.session.items == ()


@pytest.mark.asyncio
class TestExtractItems:
    """Test concurrent extraction of several items."""

    async def test_out_of_order_completion(self, two_item_session, sample_table, parts_table):
        store = SessionStore(two_item_session)
        first, second = two_item_session.items
        # Both fixture items carry the same bytes; give the second its own payload
        store.apply(update_item, second.id, payload="data:image/png;base64,U0VDT05E")
        second_done = asyncio.Event()

        async def extractor(payload, media_type):
            if payload == first.payload:
                await second_done.wait()
                return [sample_table]
            second_done.set()
            return [parts_table]

        await extract_items(store, [first.id, second.id], extractor)

        assert store.session.get(first.id).tables == (sample_table,)
        assert store.session.get(second.id).tables == (parts_table,)

    async def test_concurrency_bound(self, make_item):
        items = [make_item(f"{i}.png") for i in range(5)]
        store = SessionStore(add_items(Session(), items))
        in_flight = 0
        peak = 0

        async def extractor(payload, media_type):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return [ExtractedTable(title="T", headers=[], rows=[])]

        await extract_items(store, [item.id for item in items], extractor, max_concurrency=2)

        assert peak == 2
        assert all(item.status == ItemStatus.COMPLETE for item in store.session.items)

    async def test_one_failure_does_not_affect_others(self, two_item_session, sample_table):
        store = SessionStore(two_item_session)
        first, second = two_item_session.items
        calls = []

        async def extractor(payload, media_type):
            calls.append(payload)
            if len(calls) == 1:
                raise ExtractionError("offline")
            return [sample_table]

        await extract_items(store, [first.id, second.id], extractor, max_concurrency=1)

        assert store.session.get(first.id).status == ItemStatus.ERROR
        assert store.session.get(second.id).status == ItemStatus.COMPLETE
