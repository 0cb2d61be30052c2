"""
Structured logging configuration using structlog.

Every onboarding run writes its own log file (onboarding_<timestamp>.log)
under settings.logs_dir and echoes to the console. Events are JSON lines
unless CADENCE_DEBUG is set, in which case the console renderer is used.
Bind onboarding-scoped fields (run id, scene, runner name) with
bind_context() so they appear on every event.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from cadence.core.config import settings

LOG_FILE_PREFIX = "onboarding_"


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old onboarding logs, keeping only the N most recent.

    Args:
        logs_dir: Directory containing log files
        keep: Number of recent log files to retain
    """
    by_age = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in by_age[max(keep, 0) :]:
        try:
            stale.unlink()
        except OSError as e:
            structlog.get_logger(__name__).warning(
                "log_cull_failed", path=str(stale), error=str(e)
            )


def _processors(debug: bool) -> List[Processor]:
    chain: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]
    if debug:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        chain.extend([structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()])
    return chain


def _reset_root_handlers(log_file: Path, level: int) -> None:
    root = logging.getLogger()
    # Reconfiguring (tests, repeated CLI runs) must not stack handlers
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)

    plain = logging.Formatter("%(message)s")
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, mode="w")):
        handler.setFormatter(plain)
        root.addHandler(handler)


def configure_logging(
    log_sessions_to_keep: Optional[int] = None, logs_dir: Optional[Path] = None
) -> Path:
    """Configure structlog for an onboarding run.

    Call once at startup, before any logging. Each call opens a new
    timestamped log file and culls the oldest ones.

    Args:
        log_sessions_to_keep: Number of run logs to retain
            (default: settings.log_sessions_to_keep)
        logs_dir: Override the log directory (default: settings.logs_dir)

    Returns:
        Path of the log file opened for this run
    """
    keep = settings.log_sessions_to_keep if log_sessions_to_keep is None else log_sessions_to_keep
    target_dir = Path(logs_dir or settings.logs_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    # Leave room for the file opened below
    _cull_old_logs(target_dir, keep=keep - 1)
    log_file = target_dir / f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d_%H%M%S_%f}.log"

    level = logging.DEBUG if settings.debug else logging.INFO
    _reset_root_handlers(log_file, level)

    structlog.configure(
        processors=_processors(settings.debug),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from cadence.core.logging import get_logger

        log = get_logger(__name__)
        log.info("scene_entered", scene="wearable")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind fields onto every subsequent event, e.g.

        bind_context(onboarding_id=run_id, runner="Sam")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
