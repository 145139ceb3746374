"""Pagination helpers for Bitbucket's page/pagelen collections.

Pages are fetched strictly one after another: whether page N+1 is requested
depends on what page N contained.
"""

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 100


async def paginate_offset(
    fetch_page: Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]],
    *,
    page_param: str = "page",
    per_page_param: str = "pagelen",
    per_page: int = 30,
    start_page: int = 1,
    results_key: str = "values",
    max_pages: int = DEFAULT_MAX_PAGES,
) -> AsyncIterator[Dict[str, Any]]:
    """Paginate APIs that use page/pagelen offset pagination.

    A page shorter than per_page is the last one. Stopping iteration early
    (e.g. after finding a match) means later pages are never requested.

    Args:
        fetch_page: Async callable(params: dict) -> decoded page body. It is
                    expected to raise on non-2xx responses.
        page_param: Query parameter name for page number.
        per_page_param: Query parameter name for page size.
        per_page: Items per page.
        start_page: First page number (1-indexed).
        results_key: Key in the page body holding the items.
        max_pages: Safety limit on total pages fetched.
    """
    page = start_page
    for _ in range(max_pages):
        params = {page_param: page, per_page_param: per_page}
        data = await fetch_page(params)

        items = (data or {}).get(results_key) or []
        for item in items:
            yield item

        if len(items) < per_page:
            return

        page += 1

    logger.warning(
        "Stopped paginating after %d pages (started at page %d)", max_pages, start_page
    )


async def collect_all_pages(
    paginator: AsyncIterator[Dict[str, Any]],
    max_items: int = 10_000,
) -> List[Dict[str, Any]]:
    """Flatten any async paginator into a list.

    Args:
        paginator: An async iterator yielding items.
        max_items: Safety cap on total items collected.

    Returns:
        List of all items.
    """
    items: List[Dict[str, Any]] = []
    async for item in paginator:
        items.append(item)
        if len(items) >= max_items:
            logger.warning("collect_all_pages hit max_items=%d", max_items)
            break
    return items
