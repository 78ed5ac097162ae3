import json

import httpx
import openai
import pytest
from structlog.testing import capture_logs

from campus_kart.suggestion import (
    CategorySuggester,
    ClassificationInput,
    ClassificationOutput,
    SuggestionOutcome,
    build_output_schema,
    build_suggestion_prompt,
    parse_suggestion_response,
    suggest_category,
    validate_suggestion,
)
from campus_kart.taxonomy import CategoryTaxonomy

TAXONOMY = CategoryTaxonomy(["Books", "Electronics", "Furniture", "Clothing", "Other"])
LAPTOP = ClassificationInput(
    title="Gaming laptop", description="16GB RAM, RTX 3060, barely used"
)


def create_mock_response(mocker, content):
    mock_choice = mocker.MagicMock()
    mock_choice.message.content = content
    mock_response = mocker.MagicMock()
    mock_response.choices = [mock_choice]
    return mock_response


def _request():
    return httpx.Request("POST", "https://example.com/v1/chat/completions")


def _out_of_taxonomy_warnings(logs):
    return [
        entry
        for entry in logs
        if entry["event"] == "Suggested category outside taxonomy"
    ]


@pytest.fixture
def suggester(settings):
    return CategorySuggester(settings, TAXONOMY)


@pytest.fixture
def mock_create(mocker):
    return mocker.patch(
        "campus_kart.suggestion.CategorySuggester._create_completion"
    )


def test_valid_label_is_returned(suggester, mock_create, mocker):
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Books"}'
    )

    with capture_logs() as logs:
        result = suggester.suggest_category(
            ClassificationInput("Calculus textbook", "Stewart, 8th edition")
        )

    assert result == ClassificationOutput("Books", SuggestionOutcome.SUGGESTED)
    assert result.to_dict() == {"suggestedCategory": "Books"}
    assert _out_of_taxonomy_warnings(logs) == []


def test_out_of_taxonomy_label_falls_back_to_null_and_is_logged(
    suggester, mock_create, mocker
):
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Gadgets"}'
    )

    with capture_logs() as logs:
        result = suggester.suggest_category(LAPTOP)

    assert result.to_dict() == {"suggestedCategory": None}
    assert result.outcome == SuggestionOutcome.REJECTED
    warnings = _out_of_taxonomy_warnings(logs)
    assert len(warnings) == 1
    assert warnings[0]["log_level"] == "warning"
    assert warnings[0]["suggested_category"] == "Gadgets"
    assert warnings[0]["title"] == LAPTOP.title
    assert warnings[0]["description"] == LAPTOP.description


def test_null_label_is_not_a_diagnostic(suggester, mock_create, mocker):
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": null}'
    )

    with capture_logs() as logs:
        result = suggester.suggest_category(LAPTOP)

    assert result.to_dict() == {"suggestedCategory": None}
    assert result.outcome == SuggestionOutcome.NO_SUGGESTION
    assert [entry for entry in logs if entry["log_level"] in ("warning", "error")] == []


def test_network_error_returns_null_without_raising(suggester, mock_create):
    mock_create.side_effect = openai.APIConnectionError(request=_request())

    with capture_logs() as logs:
        result = suggester.suggest_category(LAPTOP)

    assert result.to_dict() == {"suggestedCategory": None}
    assert result.outcome == SuggestionOutcome.FAILED
    failures = [entry for entry in logs if entry["log_level"] in ("warning", "error")]
    assert len(failures) == 1
    assert failures[0]["event"] == "Category suggestion model failed"


def test_timeout_returns_null(suggester, mock_create):
    mock_create.side_effect = openai.APITimeoutError(request=_request())

    result = suggester.suggest_category(LAPTOP)

    assert result == ClassificationOutput(None, SuggestionOutcome.FAILED)


def test_unexpected_exception_returns_null(suggester, mock_create):
    mock_create.side_effect = RuntimeError("socket closed")

    with capture_logs() as logs:
        result = suggester.suggest_category(LAPTOP)

    assert result == ClassificationOutput(None, SuggestionOutcome.FAILED)
    assert [entry["event"] for entry in logs if entry["log_level"] == "error"] == [
        "Unexpected category suggestion failure"
    ]


@pytest.mark.parametrize(
    "content",
    ["not json", "", "[]", '{"category": "Books"}', '{"suggestedCategory": 3}'],
)
def test_malformed_response_returns_null(suggester, mock_create, mocker, content):
    mock_create.return_value = create_mock_response(mocker, content)

    result = suggester.suggest_category(LAPTOP)

    assert result == ClassificationOutput(None, SuggestionOutcome.FAILED)


def test_response_without_choices_returns_null(suggester, mock_create, mocker):
    response = mocker.MagicMock()
    response.choices = []
    mock_create.return_value = response

    result = suggester.suggest_category(LAPTOP)

    assert result == ClassificationOutput(None, SuggestionOutcome.FAILED)


def test_empty_input_skips_the_service(suggester, mock_create):
    result = suggester.suggest_category(ClassificationInput("", "   "))

    assert result.to_dict() == {"suggestedCategory": None}
    mock_create.assert_not_called()


@pytest.mark.parametrize(
    "raw", ["Gadgets", "books", "Books!", "Other ", "Electronics, Books", "Books", None]
)
def test_non_null_output_is_always_in_taxonomy(suggester, mock_create, mocker, raw):
    mock_create.return_value = create_mock_response(
        mocker, json.dumps({"suggestedCategory": raw})
    )

    result = suggester.suggest_category(LAPTOP)

    assert result.suggested_category is None or result.suggested_category in TAXONOMY


def test_request_declares_taxonomy_schema_and_timeout(suggester, mock_create, mocker):
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Electronics"}'
    )

    suggester.suggest_category(LAPTOP)

    mock_create.assert_called_once()
    kwargs = mock_create.call_args.kwargs
    assert kwargs["model"] == "suggest-model"
    assert kwargs["timeout"] == 30
    assert kwargs["temperature"] == 0.0
    response_format = kwargs["response_format"]
    assert response_format["type"] == "json_schema"
    assert response_format["json_schema"]["schema"] == build_output_schema(TAXONOMY)
    system, user = kwargs["messages"]
    assert system["role"] == "system"
    for label in TAXONOMY:
        assert f"- {label}" in system["content"]
    assert user["content"] == (
        "Title: Gaming laptop\nDescription: 16GB RAM, RTX 3060, barely used"
    )


def test_request_omits_temperature_for_gpt5(settings, mock_create, mocker):
    settings.SUGGEST_MODEL = "gpt-5-mini"
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Electronics"}'
    )

    CategorySuggester(settings, TAXONOMY).suggest_category(LAPTOP)

    assert "temperature" not in mock_create.call_args.kwargs


def test_validation_fallback_is_deterministic():
    first = validate_suggestion("Gadgets", TAXONOMY, LAPTOP)
    second = validate_suggestion("Gadgets", TAXONOMY, LAPTOP)

    assert first == second == ClassificationOutput(None, SuggestionOutcome.REJECTED)


def test_output_schema_enumerates_taxonomy_and_null():
    schema = build_output_schema(CategoryTaxonomy(["Books", "Other"]))

    assert schema["required"] == ["suggestedCategory"]
    assert schema["additionalProperties"] is False
    assert schema["properties"]["suggestedCategory"]["enum"] == ["Books", "Other", None]


def test_prompt_includes_no_fit_rule_only_for_taxonomy_member():
    with_other = build_suggestion_prompt(TAXONOMY, "Other")
    without_other = build_suggestion_prompt(CategoryTaxonomy(["Books"]), "Other")

    assert 'answer "Other"' in with_other
    assert 'answer "Other"' not in without_other
    assert "answer null" in without_other


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"suggestedCategory": "Books"}', "Books"),
        ('Sure! {"suggestedCategory": "Furniture"} hope that helps', "Furniture"),
        ('{"suggestedCategory": " Furniture "}', " Furniture "),
        ('{"suggestedCategory": null}', None),
        ('{"suggestedCategory": "null"}', "null"),
        ('{"suggestedCategory": ""}', ""),
    ],
)
def test_parse_suggestion_response(text, expected):
    assert parse_suggestion_response(text) == expected


@pytest.mark.parametrize("raw", ["null", "NULL", "", " Furniture "])
def test_string_that_is_not_a_label_is_rejected_and_logged(
    suggester, mock_create, mocker, raw
):
    mock_create.return_value = create_mock_response(
        mocker, json.dumps({"suggestedCategory": raw})
    )

    with capture_logs() as logs:
        result = suggester.suggest_category(LAPTOP)

    assert result == ClassificationOutput(None, SuggestionOutcome.REJECTED)
    warnings = _out_of_taxonomy_warnings(logs)
    assert len(warnings) == 1
    assert warnings[0]["suggested_category"] == raw


def test_suggest_category_returns_wire_shape(settings, mock_create, mocker):
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Clothing"}'
    )

    result = suggest_category(
        "Winter jacket", "Size M, worn twice", settings=settings, taxonomy=TAXONOMY
    )

    assert result == {"suggestedCategory": "Clothing"}


def test_suggester_uses_configured_categories(settings, mock_create, mocker):
    settings.CATEGORIES = ["Bikes", "Books"]
    mock_create.return_value = create_mock_response(
        mocker, '{"suggestedCategory": "Electronics"}'
    )

    suggester = CategorySuggester(settings)
    result = suggester.suggest_category(LAPTOP)

    assert suggester.taxonomy.list_categories() == ("Bikes", "Books")
    assert result.suggested_category is None
