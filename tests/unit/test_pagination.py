"""Tests for pagination helpers.

Verifies:
- paginate_offset requests pages in order and stops on a short page.
- Early exit from iteration means later pages are never fetched.
- max_pages bounds a listing that never ends.
- collect_all_pages flattens an async generator and respects max_items.
"""

import pytest
from unittest.mock import AsyncMock

from scm_bitbucket.scm.pagination import collect_all_pages, paginate_offset


pytestmark = pytest.mark.asyncio


def _page(start, count):
    return {"values": [{"id": i} for i in range(start, start + count)]}


class TestPaginateOffset:
    """Tests for page/pagelen pagination."""

    async def test_single_short_page(self):
        """Single page with fewer items than per_page yields all items."""
        fetch_page = AsyncMock(return_value=_page(0, 2))

        items = [item async for item in paginate_offset(fetch_page, per_page=10)]

        assert items == [{"id": 0}, {"id": 1}]
        fetch_page.assert_awaited_once_with({"page": 1, "pagelen": 10})

    async def test_multiple_pages(self):
        """First page full, second partial -- stops after second."""
        fetch_page = AsyncMock(side_effect=[_page(0, 2), _page(2, 1)])

        items = [item async for item in paginate_offset(fetch_page, per_page=2)]

        assert [item["id"] for item in items] == [0, 1, 2]
        assert fetch_page.await_count == 2
        assert fetch_page.await_args_list[1].args[0] == {"page": 2, "pagelen": 2}

    async def test_start_page(self):
        fetch_page = AsyncMock(return_value=_page(0, 0))

        items = [item async for item in paginate_offset(fetch_page, start_page=4)]

        assert items == []
        fetch_page.assert_awaited_once_with({"page": 4, "pagelen": 30})

    async def test_missing_results_key_ends_iteration(self):
        fetch_page = AsyncMock(return_value={"size": 0})

        items = [item async for item in paginate_offset(fetch_page)]

        assert items == []
        assert fetch_page.await_count == 1

    async def test_early_exit_skips_later_pages(self):
        """Breaking out of the loop never requests the next page."""
        fetch_page = AsyncMock(side_effect=[_page(0, 2), _page(2, 2)])

        pages = paginate_offset(fetch_page, per_page=2)
        async for item in pages:
            if item["id"] == 1:
                break
        await pages.aclose()

        assert fetch_page.await_count == 1

    async def test_max_pages_limit(self):
        """Stops after max_pages even if every page is full."""
        fetch_page = AsyncMock(return_value=_page(0, 2))

        items = [
            item async for item in paginate_offset(fetch_page, per_page=2, max_pages=3)
        ]

        assert len(items) == 6
        assert fetch_page.await_count == 3

    async def test_fetch_error_propagates(self):
        fetch_page = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            [item async for item in paginate_offset(fetch_page)]


class TestCollectAllPages:
    """Tests for collect_all_pages."""

    async def test_collects_everything(self):
        fetch_page = AsyncMock(side_effect=[_page(0, 2), _page(2, 1)])

        items = await collect_all_pages(paginate_offset(fetch_page, per_page=2))

        assert len(items) == 3

    async def test_max_items_cap(self):
        fetch_page = AsyncMock(return_value=_page(0, 5))

        items = await collect_all_pages(paginate_offset(fetch_page, per_page=5), max_items=3)

        assert len(items) == 3
