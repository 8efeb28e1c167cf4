from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from qos_deploy.config import DeploySettings

LOG_FILE_NAME = "qos-deploy.log"
ROOT_LOGGER_NAME = "qos_deploy"
OPERATOR_LOGGER_NAME = "qos_deploy.operator"


class _ExcludeOperatorRecords(logging.Filter):
    # Operator lines are already rendered by the rich console.
    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(OPERATOR_LOGGER_NAME)


def configure_logging(settings: DeploySettings) -> Path | None:
    """Route `qos_deploy.*` records to the JSON log file and, if asked, stderr.

    Returns the log file path, or None when the log directory is not writable.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file: Path | None = settings.log_dir / LOG_FILE_NAME
    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError:
        log_file = None
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            _formatter(_add_component, structlog.processors.JSONRenderer(sort_keys=True))
        )
        logger.addHandler(file_handler)

    if settings.console_logging:
        console_handler = logging.StreamHandler(stream=sys.stderr)
        console_handler.setLevel(logging.getLevelName(settings.log_level))
        console_handler.setFormatter(
            _formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
        )
        console_handler.addFilter(_ExcludeOperatorRecords())
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug(
        "logging configured cluster=%s console=%s path=%s",
        settings.cluster_name,
        settings.console_logging,
        log_file,
    )
    return log_file


def _formatter(*processors: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            *processors,
        ],
    )


def _add_component(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    # Last segment of the logger name, e.g. "runner".
    event_dict.setdefault("component", event_dict.get("logger", "").rpartition(".")[2])
    return event_dict
