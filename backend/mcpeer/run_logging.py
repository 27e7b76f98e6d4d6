"""Run-scoped logging helpers.

Every orchestration request carries a run id; these helpers attach it to log
records so the formatter configured in ``main`` can print it.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("mcpeer.run")

SYSTEM_RUN_ID = "system"


class RunIdFilter(logging.Filter):
    """Ensure every log record has a run_id attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = SYSTEM_RUN_ID
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [run_id=%(run_id)s] %(name)s: %(message)s",
    )
    run_filter = RunIdFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(run_filter)


def log_run(run_id: str, message: str, *args: object) -> None:
    logger.info(message, *args, extra={"run_id": run_id})


def warn_run(run_id: str, message: str, *args: object) -> None:
    logger.warning(message, *args, extra={"run_id": run_id})


__all__ = ["RunIdFilter", "SYSTEM_RUN_ID", "configure_logging", "log_run", "warn_run"]
