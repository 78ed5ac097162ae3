import logging
import sys

import structlog

from .config import Settings

# Name of the root handler installed by configure_logging
HANDLER_NAME = "campus_kart"


def configure_logging(settings: Settings):
    """
    Configures structlog and the standard library root logger.

    Log lines go to stderr: stdout is reserved for command output such as the
    JSON printed by ``campus-kart-suggest``. Calling this again replaces the
    handler installed by a previous call instead of adding a second one.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        # This must be the last processor in the chain
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=shared_processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if settings.LOG_FORMAT == "json":
        renderers = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:  # console
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.LOG_LEVEL)

    # HTTP client and SDK chatter; request failures are logged by our own code
    for logger_name in ("httpx", "urllib3", "openai", "openai._base_client"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
