"""
Campus Kart marketplace core.

This package contains:

- the category taxonomy shared by listing forms and the category suggester
- the constrained category suggester (prompt + schema + LLM call + validation)
- the listing entity, draft validation and browse filtering/pagination
- listing stores (in-memory and REST) and an in-memory chat store
- configuration (environment variables) and logging setup
"""

from .suggestion import (
    CategorySuggester,
    ClassificationInput,
    ClassificationOutput,
    SuggestionOutcome,
    suggest_category,
)
from .taxonomy import CategoryTaxonomy, TaxonomyError

__all__ = [
    "CategorySuggester",
    "CategoryTaxonomy",
    "ClassificationInput",
    "ClassificationOutput",
    "SuggestionOutcome",
    "TaxonomyError",
    "suggest_category",
]
