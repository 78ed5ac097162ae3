"""
Category Suggestion Command
===========================

Command-line entry point that suggests a category for a listing draft and
prints the result as JSON, e.g.::

    campus-kart-suggest --title "Calculus textbook" --description "8th edition"
    {"suggestedCategory": "Books"}
"""

from __future__ import annotations

import json

import click
import structlog

from .config import Settings, setup_libraries
from .logging_config import configure_logging
from .suggestion import CategorySuggester, ClassificationInput
from .taxonomy import CategoryTaxonomy

CONFIG_ERROR_EXIT_CODE = 2


@click.command()
@click.option("--title", default="", help="Listing title.")
@click.option("--description", default="", help="Listing description.")
@click.option(
    "--list-categories",
    is_flag=True,
    help="Print the configured categories and exit.",
)
@click.pass_context
def main(ctx: click.Context, title: str, description: str, list_categories: bool) -> None:
    """Suggest a marketplace category for a listing."""
    log = structlog.get_logger(__name__)

    try:
        settings = Settings()
        configure_logging(settings)
        setup_libraries(settings)
        taxonomy = CategoryTaxonomy.from_settings(settings)
    except ValueError as e:
        log.error("Configuration error", error=str(e))
        ctx.exit(CONFIG_ERROR_EXIT_CODE)
        return

    if list_categories:
        for label in taxonomy.list_categories():
            click.echo(label)
        return

    log.info(
        "Suggesting category",
        llm_provider=settings.LLM_PROVIDER,
        model=settings.SUGGEST_MODEL,
        categories=list(taxonomy.list_categories()),
    )
    suggester = CategorySuggester(settings, taxonomy)
    result = suggester.suggest_category(ClassificationInput(title, description))
    click.echo(json.dumps(result.to_dict()))


if __name__ == "__main__":
    main()
