"""structlog configuration and per-stage logging context.

Provides request ID generation, stage-level logging context managers,
and structured log configuration for console and JSON output with
optional file logging.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator


# ---------------------------------------------------------------------------
# Request ID
# ---------------------------------------------------------------------------


def generate_request_id() -> str:
    """Generate a unique identifier for one search request.

    Returns:
        A short hex string suitable for log correlation.
    """
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Libraries whose INFO output drowns the pipeline events.
_NOISY_LOGGERS = ("httpx", "httpcore", "LiteLLM", "litellm")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _handler(
    handler: logging.Handler,
    renderer: structlog.types.Processor,
    level: int,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    return handler


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
) -> None:
    """Route structlog and stdlib records through one set of handlers.

    Records from third-party libraries (uvicorn, httpx, litellm) are
    rendered with the same processors as ``simplenet`` events. The file
    handler, when configured, always writes JSON lines so the file can be
    shipped regardless of the console format.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: ``"console"`` for human-readable stderr output or ``"json"``.
        log_file: Optional path for an additional JSON log file.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = logging.getLevelNamesMapping()[level_upper]

    console_renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    handlers = [_handler(logging.StreamHandler(sys.stderr), console_renderer, numeric_level)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _handler(
                logging.FileHandler(path, encoding="utf-8"),
                structlog.processors.JSONRenderer(),
                numeric_level,
            )
        )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    library_level = numeric_level if numeric_level == logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )



# ---------------------------------------------------------------------------
# Stage logging context manager
# ---------------------------------------------------------------------------


@contextmanager
def stage_logging_context(
    stage: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Context manager that binds pipeline-stage metadata to structlog.

    Logs stage start and completion, and binds the stage name plus any
    extra fields to all log entries emitted within the context.

    Args:
        stage: Pipeline stage name (``aggregate``, ``summarize``, ``store``).
        **extra: Additional key-value pairs to bind.

    Yields:
        A bound structlog logger with stage context.

    Example::

        with stage_logging_context("aggregate", category="tech") as log:
            log.info("dispatching_adapters", count=3)
    """
    structlog.contextvars.bind_contextvars(stage=stage, **extra)

    log: structlog.stdlib.BoundLogger = structlog.get_logger(stage)
    log.info("stage_start", stage=stage)

    try:
        yield log
    except Exception:
        log.exception("stage_error", stage=stage)
        raise
    finally:
        log.info("stage_end", stage=stage)
        structlog.contextvars.unbind_contextvars("stage", *extra.keys())
