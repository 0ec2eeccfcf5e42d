"""
Page slicing over an already filtered, sorted result list.

Filtering happens in memory after the store query, so the store cannot apply
LIMIT/OFFSET; pages are cut from the final list instead.
"""
from typing import Sequence, TypeVar

from healthunits.search.errors import InvalidPagingParameter

T = TypeVar("T")


def validate_paging(page: int | None, per_page: int | None) -> None:
    if page is not None and page <= 0:
        raise InvalidPagingParameter("page must be a positive integer")
    if per_page is not None and per_page <= 0:
        raise InvalidPagingParameter("per_page must be a positive integer")
    if page is not None and per_page is None:
        raise InvalidPagingParameter("per_page is required when page is given")


def total_pages(count: int, per_page: int) -> int:
    if per_page <= 0:
        raise InvalidPagingParameter("per_page must be a positive integer")
    pages = count // per_page
    if pages * per_page < count:
        pages += 1
    return pages


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of size; the last chunk may be shorter."""
    if size <= 0:
        raise InvalidPagingParameter("per_page must be a positive integer")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def paginate(items: list[T], page: int | None, per_page: int | None) -> list[T] | None:
    """
    Return the requested 1-based page of items.

    - No page and no per_page: the whole list.
    - per_page without page: page 1.
    - One page or fewer in total (including no items): the whole list.
    - page beyond the last page: None ("no such page", not an empty page).
    """
    validate_paging(page, per_page)
    if page is None and per_page is None:
        return items
    if page is None:
        page = 1

    pages = total_pages(len(items), per_page)
    if pages <= 1:
        return items

    chunks = partition(items, per_page)
    index = page - 1
    if 0 <= index <= pages - 1:
        return chunks[index]
    return None
