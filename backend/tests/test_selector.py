"""Tests for next-record selection."""

from datetime import timedelta

import pytest

from conftest import drive_link
from publisher.models.schemas import RecordStatus, utc_now
from publisher.services.selector import RecordSelector


class TestSelectNext:
    """Test which Pending record gets picked."""

    @pytest.mark.asyncio
    async def test_empty_store_returns_none(self, store):
        """Nothing Pending means nothing selected."""
        assert await RecordSelector(store).select_next() is None

    @pytest.mark.asyncio
    async def test_lowest_normalized_title_wins(self, store):
        """Ordering ignores case and surrounding whitespace."""
        store.add(title="beta", source_link=drive_link("b"))
        store.add(title="  Alpha ", source_link=drive_link("a"))
        store.add(title="Gamma", source_link=drive_link("g"))

        record = await RecordSelector(store).select_next()

        assert record.source_link == drive_link("a")

    @pytest.mark.asyncio
    async def test_record_id_breaks_ties(self, store):
        """Equal titles fall back to the record id."""
        store.add(record_id="rec-b", title="Same", source_link=drive_link("b"))
        store.add(record_id="rec-a", title="same", source_link=drive_link("a"))

        record = await RecordSelector(store).select_next()

        assert record.record_id == "rec-a"

    @pytest.mark.asyncio
    async def test_only_pending_records_considered(self, store):
        """Records in other states are never selected."""
        store.add(title="A", source_link=drive_link("a"), status=RecordStatus.UPLOADED)
        store.add(title="B", source_link=drive_link("b"), status=RecordStatus.ERROR)
        store.add(title="C", source_link=drive_link("c"), status=RecordStatus.PROCESSING)
        store.add(title="D", source_link=drive_link("d"))

        record = await RecordSelector(store).select_next()

        assert record.title == "D"

    @pytest.mark.asyncio
    async def test_invalid_records_skipped(self, store):
        """Records without a title or link are passed over."""
        store.add(title="A no link", source_link="")
        store.add(title="   ", source_link=drive_link("blank"))
        store.add(title="Z valid", source_link=drive_link("z"))

        record = await RecordSelector(store).select_next()

        assert record.title == "Z valid"

    @pytest.mark.asyncio
    async def test_selection_is_stable(self, store):
        """Repeated calls over an unchanged store return the same record."""
        for name in ("c", "a", "b"):
            store.add(title=name, source_link=drive_link(name))
        selector = RecordSelector(store)

        first = await selector.select_next()
        second = await selector.select_next()

        assert first.record_id == second.record_id


class TestStats:
    """Test record counts."""

    @pytest.mark.asyncio
    async def test_counts_and_last_upload(self, store):
        """Counts cover every status and last_upload is the latest."""
        latest = utc_now()
        store.add(title="A")
        store.add(title="B", status=RecordStatus.PROCESSING)
        store.add(title="C", status=RecordStatus.UPLOADED, uploaded_at=latest - timedelta(days=1))
        store.add(title="D", status=RecordStatus.UPLOADED, uploaded_at=latest)
        store.add(title="E", status=RecordStatus.ERROR)

        stats = await RecordSelector(store).stats()

        assert stats.total == 5
        assert (stats.pending, stats.processing, stats.uploaded, stats.error) == (1, 1, 2, 1)
        assert stats.last_upload == latest
