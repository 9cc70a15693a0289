"""structlog configuration for the studio.

Every line carries whatever ids are bound in the current context: the HTTP
request and caller from the middleware, the carousel and generation job
from the services. Development (``DEBUG=true``) renders for the console;
otherwise one JSON object per line on stdout.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

from carousel_studio.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
carousel_id_var: ContextVar[str | None] = ContextVar("carousel_id", default=None)
job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)

_CONTEXT_KEYS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("carousel_id", carousel_id_var),
    ("job_id", job_id_var),
)

# SDK and driver loggers that are chatty at INFO.
_QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "google_genai",
    "botocore",
    "boto3",
    "urllib3",
    "sqlalchemy.engine",
    "uvicorn.access",
)


def bind_job_context(carousel_id: object, job_id: str | None = None) -> None:
    """Tag subsequent log lines in this task with the carousel (and job)."""
    carousel_id_var.set(str(carousel_id))
    if job_id is not None:
        job_id_var.set(job_id)


def _add_studio_context(_logger, _method: str, event_dict: dict) -> dict:
    for key, var in _CONTEXT_KEYS:
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def setup_logging() -> None:
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_studio_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        if settings.debug
        else structlog.processors.JSONRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
