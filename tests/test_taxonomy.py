import pytest

from campus_kart.taxonomy import DEFAULT_TAXONOMY, CategoryTaxonomy, TaxonomyError


def test_list_categories_keeps_declared_order():
    taxonomy = CategoryTaxonomy(["Books", "Electronics", "Furniture", "Clothing", "Other"])

    assert taxonomy.list_categories() == (
        "Books",
        "Electronics",
        "Furniture",
        "Clothing",
        "Other",
    )
    assert len(taxonomy) == 5
    assert list(taxonomy) == list(taxonomy.list_categories())
    assert taxonomy == DEFAULT_TAXONOMY


def test_labels_are_stripped():
    taxonomy = CategoryTaxonomy([" Books ", "Bikes"])

    assert taxonomy.list_categories() == ("Books", "Bikes")
    assert "Books" in taxonomy


def test_membership_is_exact():
    taxonomy = CategoryTaxonomy(["Books", "Other"])

    assert "Books" in taxonomy
    assert "books" not in taxonomy
    assert "Gadgets" not in taxonomy
    assert None not in taxonomy
    assert 1 not in taxonomy


@pytest.mark.parametrize(
    ("labels", "message"),
    [
        ([], "at least one label"),
        (["Books", "  "], "must not be blank"),
        (["Books", "Books"], "Duplicate category label"),
        (["Books", " Books"], "Duplicate category label"),
        (["Books", None], "must be strings"),
    ],
)
def test_invalid_taxonomies_fail_fast(labels, message):
    with pytest.raises(TaxonomyError, match=message):
        CategoryTaxonomy(labels)


def test_taxonomy_error_is_a_configuration_value_error():
    with pytest.raises(ValueError):
        CategoryTaxonomy([])


def test_from_settings(settings):
    settings.CATEGORIES = ["Books", "Bikes"]

    taxonomy = CategoryTaxonomy.from_settings(settings)

    assert taxonomy.list_categories() == ("Books", "Bikes")


def test_from_settings_rejects_empty_entry(settings):
    settings.CATEGORIES = ["Books", ""]

    with pytest.raises(TaxonomyError):
        CategoryTaxonomy.from_settings(settings)
