"""structlog setup shared by the HTTP app and the arq worker."""

import logging

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from crewmate.config import Settings

SERVICE_NAME = "crewmate-engagement"


def _service_context(environment: str) -> Processor:
    """Stamp every event with the service and environment it came from."""

    def add_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_context


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON (production) or console (local) output.

    Domain code logs events such as ``points_awarded`` or ``referral_credited``
    with keyword context; request ids arrive through contextvars.
    """
    json_output = settings.log_format == "json"
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings.environment),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.processors.format_exc_info, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))
