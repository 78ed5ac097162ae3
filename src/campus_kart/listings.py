"""
Listings
========

The listing entity as stored by the document store, and validation of the
drafts students submit from the listing form.

Stored documents use camelCase keys (``imageUrl``, ``sellerId``...) and ISO-8601
timestamps; in memory, listings are frozen dataclasses with timezone-aware
datetimes.
"""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, replace
from urllib.parse import urlparse

from .taxonomy import CategoryTaxonomy

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 1000


class ListingStatus(str, enum.Enum):
    AVAILABLE = "available"
    SOLD = "sold"


class ListingValidationError(ValueError):
    """Raised when a listing draft fails validation; ``errors`` maps field to message."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        super().__init__(f"Invalid listing: {details}")


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def parse_timestamp(value) -> dt.datetime:
    """Parse an ISO-8601 timestamp (or pass a datetime through), assuming UTC when naive."""
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = dt.datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def format_timestamp(value: dt.datetime) -> str:
    return value.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Listing:
    id: str
    title: str
    description: str
    price: float
    category: str
    image_url: str
    seller_id: str
    created_at: dt.datetime
    updated_at: dt.datetime | None = None
    status: ListingStatus = ListingStatus.AVAILABLE

    @property
    def is_available(self) -> bool:
        return self.status == ListingStatus.AVAILABLE

    @classmethod
    def from_dict(cls, data: dict) -> Listing:
        """Build a listing from a stored document."""
        updated_at = data.get("updatedAt")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            price=float(data.get("price", 0)),
            category=str(data.get("category", "")),
            image_url=str(data.get("imageUrl", "")),
            seller_id=str(data.get("sellerId", "")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(updated_at) if updated_at else None,
            # Documents written before status existed are treated as available.
            status=ListingStatus(data.get("status") or ListingStatus.AVAILABLE.value),
        )

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "imageUrl": self.image_url,
            "sellerId": self.seller_id,
            "createdAt": format_timestamp(self.created_at),
            "status": self.status.value,
        }
        if self.updated_at is not None:
            payload["updatedAt"] = format_timestamp(self.updated_at)
        return payload

    def with_changes(self, **changes) -> Listing:
        """Return a copy with ``changes`` applied and ``updated_at`` stamped."""
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)


@dataclass
class ListingDraft:
    """Values submitted from the listing form, before the store assigns an id."""

    title: str
    description: str
    price: float
    category: str
    image_url: str = ""

    def to_dict(self) -> dict:
        return {
            "title": self.title.strip(),
            "description": self.description.strip(),
            "price": float(self.price),
            "category": self.category,
            "imageUrl": self.image_url.strip(),
        }


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_fields(values: dict, taxonomy: CategoryTaxonomy) -> tuple[dict, dict[str, str]]:
    """
    Check whichever listing form fields are present in ``values``.

    Returns the normalized values and a field -> message map of failures.
    """
    cleaned: dict = {}
    errors: dict[str, str] = {}

    if "title" in values:
        title = (values["title"] or "").strip()
        if len(title) < TITLE_MIN_LENGTH:
            errors["title"] = f"Title must be at least {TITLE_MIN_LENGTH} characters."
        elif len(title) > TITLE_MAX_LENGTH:
            errors["title"] = "Title too long."
        cleaned["title"] = title

    if "description" in values:
        description = (values["description"] or "").strip()
        if len(description) < DESCRIPTION_MIN_LENGTH:
            errors["description"] = (
                f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters."
            )
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = "Description too long."
        cleaned["description"] = description

    if "price" in values:
        try:
            price = float(values["price"])
        except (TypeError, ValueError):
            price = None
        # NaN fails every comparison, so "not price > 0" also rejects it
        if price is None or not price > 0:
            errors["price"] = "Price must be a positive number."
        cleaned["price"] = price

    if "category" in values:
        if values["category"] not in taxonomy:
            errors["category"] = "Category is required."
        cleaned["category"] = values["category"]

    if "image_url" in values:
        image_url = (values["image_url"] or "").strip()
        if not image_url:
            errors["image_url"] = "Please provide an image URL for your listing."
        elif not _is_http_url(image_url):
            errors["image_url"] = "Image URL must be an http(s) URL."
        cleaned["image_url"] = image_url

    return cleaned, errors


def validate_listing_draft(draft: ListingDraft, taxonomy: CategoryTaxonomy) -> ListingDraft:
    """
    Validate a draft, raising ListingValidationError with every failing field.
    """
    _, errors = _check_fields(
        {
            "title": draft.title,
            "description": draft.description,
            "price": draft.price,
            "category": draft.category,
            "image_url": draft.image_url,
        },
        taxonomy,
    )
    if errors:
        raise ListingValidationError(errors)
    return draft


def validate_listing_changes(changes: dict, taxonomy: CategoryTaxonomy) -> dict:
    """
    Validate a partial update of form fields and return the normalized values.

    Fields other than the form fields (``status``) are passed through untouched.
    """
    cleaned, errors = _check_fields(changes, taxonomy)
    if errors:
        raise ListingValidationError(errors)
    return {**changes, **cleaned}
