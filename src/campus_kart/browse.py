"""
Browse
======

Filtering, searching, sorting and pagination of listings for the browse page.

The browse page keeps its state in URL parameters (``q``, ``categories``,
``minPrice``, ``maxPrice``, ``sortBy``, ``page``). `parse_browse_params`
turns those into a `BrowseQuery`, and `browse_listings` applies it to a list
of listings, returning one `Page`.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import structlog

from .listings import Listing

log = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 12


class SortOrder(str, enum.Enum):
    CREATED_DESC = "createdAt_desc"
    CREATED_ASC = "createdAt_asc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


@dataclass(frozen=True)
class BrowseQuery:
    search: str = ""
    categories: tuple[str, ...] = ()
    min_price: float | None = None
    max_price: float | None = None
    sort_by: SortOrder = SortOrder.CREATED_DESC
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class Page:
    items: list[Listing] = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_items: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.total_items else 0

    @property
    def first_index(self) -> int:
        """1-based index of the first item shown, 0 when the page is empty."""
        return (self.page - 1) * self.page_size + 1 if self.items else 0

    @property
    def last_index(self) -> int:
        return self.first_index + len(self.items) - 1 if self.items else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def _parse_price(value: str | None, name: str) -> float | None:
    if value is None or not str(value).strip():
        return None
    try:
        price = float(value)
    except ValueError:
        log.debug("Ignoring unparsable price filter", param=name, value=value)
        return None
    if math.isnan(price) or price < 0:
        return None
    return price


def parse_browse_params(
    params: Mapping[str, str], page_size: int = DEFAULT_PAGE_SIZE
) -> BrowseQuery:
    """
    Build a BrowseQuery from URL query parameters.

    Unparsable values fall back to their defaults rather than failing the page.
    """
    categories = tuple(
        part.strip()
        for part in (params.get("categories") or "").split(",")
        if part.strip()
    )

    sort_value = params.get("sortBy") or SortOrder.CREATED_DESC.value
    try:
        sort_by = SortOrder(sort_value)
    except ValueError:
        log.debug("Unknown sort order; using default", sort_by=sort_value)
        sort_by = SortOrder.CREATED_DESC

    try:
        page = int(params.get("page") or 1)
    except ValueError:
        page = 1

    return BrowseQuery(
        search=(params.get("q") or "").strip(),
        categories=categories,
        min_price=_parse_price(params.get("minPrice"), "minPrice"),
        max_price=_parse_price(params.get("maxPrice"), "maxPrice"),
        sort_by=sort_by,
        page=max(1, page),
        page_size=max(1, page_size),
    )


def _matches_search(listing: Listing, term: str) -> bool:
    term = term.lower()
    return term in listing.title.lower() or term in listing.description.lower()


def filter_listings(listings: Iterable[Listing], query: BrowseQuery) -> list[Listing]:
    """Keep available listings matching the category, price and search filters."""
    result = []
    for listing in listings:
        if not listing.is_available:
            continue
        if query.categories and listing.category not in query.categories:
            continue
        if query.min_price is not None and listing.price < query.min_price:
            continue
        if query.max_price is not None and listing.price > query.max_price:
            continue
        if query.search and not _matches_search(listing, query.search):
            continue
        result.append(listing)
    return result


def sort_listings(listings: Iterable[Listing], sort_by: SortOrder) -> list[Listing]:
    if sort_by in (SortOrder.PRICE_ASC, SortOrder.PRICE_DESC):
        return sorted(
            listings,
            key=lambda listing: listing.price,
            reverse=sort_by == SortOrder.PRICE_DESC,
        )
    return sorted(
        listings,
        key=lambda listing: listing.created_at,
        reverse=sort_by == SortOrder.CREATED_DESC,
    )


def paginate(items: Sequence[Listing], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    page = max(1, page)
    page_size = max(1, page_size)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start : start + page_size]),
        page=page,
        page_size=page_size,
        total_items=len(items),
    )


def browse_listings(listings: Iterable[Listing], query: BrowseQuery) -> Page:
    """Filter, sort and paginate listings for one browse page."""
    matched = sort_listings(filter_listings(listings, query), query.sort_by)
    return paginate(matched, query.page, query.page_size)
