"""
Category Taxonomy
=================

The fixed, ordered set of listing category labels. It is the single source of
truth shared by the category suggester's output schema and by listing
validation and browsing.

A taxonomy is validated once when it is built: it can never be empty and
never holds blank or duplicate labels.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from .config import Settings


class TaxonomyError(ValueError):
    """Raised when the configured category labels do not form a valid taxonomy."""


class CategoryTaxonomy:
    """Immutable, ordered, non-empty set of category labels."""

    __slots__ = ("_labels", "_members")

    def __init__(self, labels: Iterable[str]):
        cleaned: list[str] = []
        for label in labels:
            if not isinstance(label, str):
                raise TaxonomyError(f"Category labels must be strings, got {label!r}")
            label = label.strip()
            if not label:
                raise TaxonomyError("Category labels must not be blank")
            if label in cleaned:
                raise TaxonomyError(f"Duplicate category label: {label!r}")
            cleaned.append(label)
        if not cleaned:
            raise TaxonomyError("Category taxonomy must contain at least one label")
        self._labels = tuple(cleaned)
        self._members = frozenset(cleaned)

    @classmethod
    def from_settings(cls, settings: Settings) -> CategoryTaxonomy:
        """Build the taxonomy from the ``CATEGORIES`` setting."""
        return cls(settings.CATEGORIES)

    def list_categories(self) -> tuple[str, ...]:
        """Return the labels in their declared order."""
        return self._labels

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and value in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoryTaxonomy):
            return NotImplemented
        return self._labels == other._labels

    def __hash__(self) -> int:
        return hash(self._labels)

    def __repr__(self) -> str:
        return f"CategoryTaxonomy({list(self._labels)!r})"


DEFAULT_TAXONOMY = CategoryTaxonomy(["Books", "Electronics", "Furniture", "Clothing", "Other"])
