import logging
import sys

import structlog

# Event keys whose values must never reach the log stream
SECRET_KEYS = frozenset({"token", "technitium_token", "api_key", "gemini_api_key"})


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    for key in SECRET_KEYS & event_dict.keys():
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def setup_logging(level: int = logging.INFO, json_output: bool = True) -> None:
    """Configure structlog for stderr: JSON lines, or colored console output for `watch`."""
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs full request URLs, which carry the Technitium token
    for name in ("httpx", "httpcore", "opensearch", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
