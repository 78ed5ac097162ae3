"""
Listing Store
=============

Data access for listings. The rest of the application depends only on the
`ListingRepository` interface; two implementations are provided:

- `InMemoryListingRepository`, a thread-safe process-local store used for
  development and tests.
- `RestListingRepository`, a client for a JSON CRUD API in front of the
  document database. It handles authentication, pagination and retries of
  idempotent requests.
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Generator

import requests
import structlog

from .browse import BrowseQuery, Page, browse_listings
from .config import Settings
from .listings import (
    Listing,
    ListingDraft,
    ListingStatus,
    format_timestamp,
    utcnow,
    validate_listing_changes,
    validate_listing_draft,
)
from .taxonomy import DEFAULT_TAXONOMY, CategoryTaxonomy
from .utils import retry

log = structlog.get_logger(__name__)

# Python attribute name -> stored document key
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "price": "price",
    "category": "category",
    "image_url": "imageUrl",
    "status": "status",
}


class ListingNotFoundError(KeyError):
    """Raised when a listing id does not exist in the store."""


def _check_changes(changes: dict, taxonomy: CategoryTaxonomy) -> dict:
    """Reject unknown fields, then validate and normalize the rest."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update listing fields: {sorted(unknown)}")
    changes = validate_listing_changes(changes, taxonomy)
    if "status" in changes:
        changes["status"] = ListingStatus(changes["status"])
    return changes


class ListingRepository(ABC):
    """CRUD and query operations on listings."""

    @abstractmethod
    def get(self, listing_id: str) -> Listing:
        """Return one listing or raise ListingNotFoundError."""

    @abstractmethod
    def list_all(self) -> list[Listing]:
        """Return every listing, whatever its status."""

    @abstractmethod
    def create(self, draft: ListingDraft, seller_id: str) -> Listing:
        """Store a new, available listing and return it with its id."""

    @abstractmethod
    def update(self, listing_id: str, **changes) -> Listing:
        """Apply field changes and return the updated listing."""

    @abstractmethod
    def delete(self, listing_id: str) -> None:
        """Delete a listing or raise ListingNotFoundError."""

    def list_by_seller(self, seller_id: str) -> list[Listing]:
        listings = [listing for listing in self.list_all() if listing.seller_id == seller_id]
        return sorted(listings, key=lambda listing: listing.created_at, reverse=True)

    def mark_sold(self, listing_id: str) -> Listing:
        return self.update(listing_id, status=ListingStatus.SOLD)

    def browse(self, query: BrowseQuery) -> Page:
        return browse_listings(self.list_all(), query)


class InMemoryListingRepository(ListingRepository):
    """Process-local listing store guarded by a re-entrant lock."""

    def __init__(
        self,
        listings: list[Listing] | None = None,
        taxonomy: CategoryTaxonomy = DEFAULT_TAXONOMY,
    ):
        self.taxonomy = taxonomy
        self._lock = threading.RLock()
        self._listings: dict[str, Listing] = {}
        for listing in listings or []:
            self._listings[listing.id] = listing

    def get(self, listing_id: str) -> Listing:
        with self._lock:
            try:
                return self._listings[listing_id]
            except KeyError:
                raise ListingNotFoundError(listing_id) from None

    def list_all(self) -> list[Listing]:
        with self._lock:
            return list(self._listings.values())

    def create(self, draft: ListingDraft, seller_id: str) -> Listing:
        validate_listing_draft(draft, self.taxonomy)
        values = draft.to_dict()
        listing = Listing(
            id=uuid.uuid4().hex,
            title=values["title"],
            description=values["description"],
            price=values["price"],
            category=values["category"],
            image_url=values["imageUrl"],
            seller_id=seller_id,
            created_at=utcnow(),
        )
        with self._lock:
            self._listings[listing.id] = listing
        log.info("Listing created", listing_id=listing.id, seller_id=seller_id)
        return listing

    def update(self, listing_id: str, **changes) -> Listing:
        changes = _check_changes(changes, self.taxonomy)
        with self._lock:
            updated = self.get(listing_id).with_changes(**changes)
            self._listings[listing_id] = updated
        log.info("Listing updated", listing_id=listing_id, fields=sorted(changes))
        return updated

    def delete(self, listing_id: str) -> None:
        with self._lock:
            if self._listings.pop(listing_id, None) is None:
                raise ListingNotFoundError(listing_id)
        log.info("Listing deleted", listing_id=listing_id)


class RestListingRepository(ListingRepository):
    """A client for the listings CRUD API."""

    def __init__(self, settings: Settings, taxonomy: CategoryTaxonomy | None = None):
        """Initializes the client with a session and authentication."""
        if not settings.LISTINGS_API_URL:
            raise ValueError("LISTINGS_API_URL must be set to use the REST listing store")
        self.settings = settings
        self.taxonomy = taxonomy or CategoryTaxonomy.from_settings(settings)
        self._base_url = f"{settings.LISTINGS_API_URL}/listings/"
        self._session = requests.Session()
        if settings.LISTINGS_API_TOKEN:
            self._session.headers.update(
                {"Authorization": f"Bearer {settings.LISTINGS_API_TOKEN}"}
            )

    def close(self) -> None:
        self._session.close()

    @retry(retryable_exceptions=(requests.exceptions.RequestException,))
    def _get(self, *args, **kwargs) -> requests.Response:
        """A retriable version of session.get."""
        return self._session.get(*args, **kwargs)

    @retry(retryable_exceptions=(requests.exceptions.RequestException,))
    def _patch(self, *args, **kwargs) -> requests.Response:
        """A retriable version of session.patch."""
        return self._session.patch(*args, **kwargs)

    def _detail_url(self, listing_id: str) -> str:
        return f"{self._base_url}{listing_id}/"

    @staticmethod
    def _raise_for_status(response: requests.Response, listing_id: str | None = None) -> None:
        if listing_id is not None and response.status_code == 404:
            raise ListingNotFoundError(listing_id)
        response.raise_for_status()

    def _list_all(self, url: str, params: dict | None = None) -> Generator[dict, None, None]:
        """
        Generator that follows the paginated API and yields every result.

        ``params`` apply to the first request only; "next" links carry their own.
        """
        while url:
            response = self._get(url, params=params, timeout=self.settings.REQUEST_TIMEOUT)
            params = None
            response.raise_for_status()
            page = response.json()
            yield from page.get("results", [])
            url = page.get("next")

    def get(self, listing_id: str) -> Listing:
        response = self._get(
            self._detail_url(listing_id), timeout=self.settings.REQUEST_TIMEOUT
        )
        self._raise_for_status(response, listing_id)
        return Listing.from_dict(response.json())

    def list_all(self) -> list[Listing]:
        listings = []
        for doc in self._list_all(self._base_url, params={"page_size": 100}):
            try:
                listings.append(Listing.from_dict(doc))
            except (KeyError, ValueError) as e:
                log.warning("Skipping malformed listing document", doc_id=doc.get("id"), error=str(e))
        return listings

    def create(self, draft: ListingDraft, seller_id: str) -> Listing:
        validate_listing_draft(draft, self.taxonomy)
        now = format_timestamp(utcnow())
        payload = {
            **draft.to_dict(),
            "sellerId": seller_id,
            "status": ListingStatus.AVAILABLE.value,
            "createdAt": now,
            "updatedAt": now,
        }
        # POST is not idempotent, so it is not retried.
        response = self._session.post(
            self._base_url, json=payload, timeout=self.settings.REQUEST_TIMEOUT
        )
        response.raise_for_status()
        listing = Listing.from_dict(response.json())
        log.info("Listing created", listing_id=listing.id, seller_id=seller_id)
        return listing

    def update(self, listing_id: str, **changes) -> Listing:
        changes = _check_changes(changes, self.taxonomy)
        payload = {}
        for name, value in changes.items():
            if name == "status":
                value = value.value
            payload[UPDATABLE_FIELDS[name]] = value
        payload["updatedAt"] = format_timestamp(utcnow())
        response = self._patch(
            self._detail_url(listing_id),
            json=payload,
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        self._raise_for_status(response, listing_id)
        log.info("Listing updated", listing_id=listing_id, fields=sorted(changes))
        return Listing.from_dict(response.json())

    def delete(self, listing_id: str) -> None:
        response = self._session.delete(
            self._detail_url(listing_id), timeout=self.settings.REQUEST_TIMEOUT
        )
        self._raise_for_status(response, listing_id)
        log.info("Listing deleted", listing_id=listing_id)

    def list_by_seller(self, seller_id: str) -> list[Listing]:
        listings = [
            listing
            for listing in (
                Listing.from_dict(doc)
                for doc in self._list_all(
                    self._base_url, params={"sellerId": seller_id, "page_size": 100}
                )
            )
            if listing.seller_id == seller_id
        ]
        return sorted(listings, key=lambda listing: listing.created_at, reverse=True)
