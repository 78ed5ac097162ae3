"""
Category Suggestion Module
==========================

This module suggests a listing category from the free-text title and
description of a listing draft, using a text-only LLM prompt.

The suggestion is constrained twice:

1. At request time, the model is given a JSON schema whose single field
   ``suggestedCategory`` may only be one of the taxonomy labels or null.
2. At response time, the value is checked again against the taxonomy. A
   label outside the taxonomy is replaced by null and logged.

The suggestion is advisory. `CategorySuggester.suggest_category` never raises
for a classification failure; it returns a null suggestion and logs why.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass

import openai
import structlog

from .config import Settings
from .llm import OpenAIChatMixin, supports_temperature
from .taxonomy import CategoryTaxonomy

log = structlog.get_logger(__name__)

OUTPUT_FIELD = "suggestedCategory"

SUGGESTION_PROMPT = """
You are an expert in categorizing listings on a campus marketplace where
students sell items to each other.

Given the title and description of an item, suggest the most appropriate
category from this closed list:
{categories}

Rules:
- Answer with exactly one category from the list, spelled verbatim.
- Never invent a category that is not in the list.{no_fit_rule}
- If the input is too vague to classify at all, answer null.

Always reply only with a single, valid JSON object that matches this schema.
Do not wrap it in markdown or add explanations.

{{"{field}": one of the categories above, or null}}
""".strip()

NO_FIT_RULE = """
- If the item does not clearly fit a specific category, or you are unsure,
  answer "{label}"."""


class SuggestionOutcome(str, enum.Enum):
    """How a suggestion was reached. Every outcome is a normal return value."""

    SUGGESTED = "suggested"
    NO_SUGGESTION = "no_suggestion"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class ClassificationInput:
    title: str
    description: str

    def is_blank(self) -> bool:
        return not (self.title or "").strip() and not (self.description or "").strip()


@dataclass(frozen=True)
class ClassificationOutput:
    suggested_category: str | None
    outcome: SuggestionOutcome = SuggestionOutcome.NO_SUGGESTION

    def to_dict(self) -> dict:
        """Return the wire shape consumed by the listing form."""
        return {OUTPUT_FIELD: self.suggested_category}


def build_suggestion_prompt(taxonomy: CategoryTaxonomy, no_fit_label: str | None = None) -> str:
    """
    Build the system prompt embedding the taxonomy as an explicit closed list.

    The "no fit" rule is only included when ``no_fit_label`` is a member of
    the taxonomy.
    """
    categories = "\n".join(f"- {label}" for label in taxonomy.list_categories())
    no_fit_rule = ""
    if no_fit_label and no_fit_label in taxonomy:
        no_fit_rule = NO_FIT_RULE.format(label=no_fit_label)
    return SUGGESTION_PROMPT.format(
        categories=categories,
        no_fit_rule=no_fit_rule,
        field=OUTPUT_FIELD,
    )


def build_user_message(data: ClassificationInput) -> str:
    return f"Title: {data.title}\nDescription: {data.description}"


def build_output_schema(taxonomy: CategoryTaxonomy) -> dict:
    """Return the JSON schema declared to the service for the response."""
    return {
        "type": "object",
        "properties": {
            OUTPUT_FIELD: {
                "type": ["string", "null"],
                "enum": [*taxonomy.list_categories(), None],
                "description": (
                    "The suggested category for the listing, or null if no "
                    "category fits well."
                ),
            }
        },
        "required": [OUTPUT_FIELD],
        "additionalProperties": False,
    }


def _extract_json(text: str) -> dict:
    """Parse JSON from raw model output, trimming surrounding text if needed."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise
        return json.loads(text[start : end + 1])


def parse_suggestion_response(text: str) -> str | None:
    """
    Parse the raw model output and return the unvalidated suggested label.

    Raises ValueError (json.JSONDecodeError included) for malformed output.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValueError("Suggestion response is empty.")

    data = _extract_json(raw)
    if not isinstance(data, dict):
        raise ValueError("Suggestion response is not a JSON object.")
    if OUTPUT_FIELD not in data:
        raise ValueError(f"Suggestion response has no '{OUTPUT_FIELD}' field.")

    value = data[OUTPUT_FIELD]
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{OUTPUT_FIELD}' must be a string or null.")
    # Strings are returned verbatim; "null", "" and padded labels are not
    # taxonomy members and must be rejected by validate_suggestion.
    return value


def validate_suggestion(
    value: str | None,
    taxonomy: CategoryTaxonomy,
    data: ClassificationInput,
) -> ClassificationOutput:
    """
    Enforce taxonomy membership on a raw suggestion.

    An out-of-taxonomy label becomes a null suggestion and is logged together
    with the input that produced it.
    """
    if value is None:
        return ClassificationOutput(None, SuggestionOutcome.NO_SUGGESTION)
    if value in taxonomy:
        return ClassificationOutput(value, SuggestionOutcome.SUGGESTED)

    log.warning(
        "Suggested category outside taxonomy",
        suggested_category=value,
        title=data.title,
        description=data.description,
        allowed_categories=list(taxonomy.list_categories()),
    )
    return ClassificationOutput(None, SuggestionOutcome.REJECTED)


class CategorySuggester(OpenAIChatMixin):
    """
    Category suggester that uses OpenAI-compatible chat completions.
    """

    def __init__(self, settings: Settings, taxonomy: CategoryTaxonomy | None = None):
        self.settings = settings
        self.taxonomy = taxonomy or CategoryTaxonomy.from_settings(settings)
        self._system_prompt = build_suggestion_prompt(
            self.taxonomy, settings.SUGGEST_NO_FIT_LABEL
        )
        self._response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": "category_suggestion",
                "strict": True,
                "schema": build_output_schema(self.taxonomy),
            },
        }

    def _request_params(self, data: ClassificationInput) -> dict:
        model = self.settings.SUGGEST_MODEL
        params = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": build_user_message(data)},
            ],
            "response_format": self._response_format,
            "timeout": self.settings.REQUEST_TIMEOUT,
        }
        if supports_temperature(model):
            params["temperature"] = self.settings.SUGGEST_TEMPERATURE
        return params

    def suggest_category(self, data: ClassificationInput) -> ClassificationOutput:
        """
        Suggest at most one category for a listing draft.

        Returns a null suggestion, never an exception, when the model declines,
        answers outside the taxonomy, or the call fails.
        """
        if data.is_blank():
            log.info("Listing draft is empty; skipping category suggestion.")
            return ClassificationOutput(None, SuggestionOutcome.NO_SUGGESTION)

        model = self.settings.SUGGEST_MODEL
        try:
            response = self._create_completion(**self._request_params(data))
            if not response.choices:
                raise ValueError("Suggestion response has no choices.")
            content = response.choices[0].message.content or ""
            value = parse_suggestion_response(content)
        except ValueError as e:
            log.warning(
                "Category suggestion response invalid",
                model=model,
                error=str(e),
                title=data.title,
            )
            return ClassificationOutput(None, SuggestionOutcome.FAILED)
        except openai.APIError as e:
            log.warning(
                "Category suggestion model failed",
                model=model,
                error=str(e),
                title=data.title,
            )
            return ClassificationOutput(None, SuggestionOutcome.FAILED)
        except Exception:
            log.exception(
                "Unexpected category suggestion failure",
                model=model,
                title=data.title,
            )
            return ClassificationOutput(None, SuggestionOutcome.FAILED)

        result = validate_suggestion(value, self.taxonomy, data)
        log.debug(
            "Category suggestion complete",
            model=model,
            outcome=result.outcome.value,
            suggested_category=result.suggested_category,
        )
        return result


def suggest_category(
    title: str,
    description: str,
    *,
    settings: Settings,
    taxonomy: CategoryTaxonomy | None = None,
) -> dict:
    """Suggest a category and return ``{"suggestedCategory": label | None}``."""
    suggester = CategorySuggester(settings, taxonomy)
    return suggester.suggest_category(ClassificationInput(title, description)).to_dict()
