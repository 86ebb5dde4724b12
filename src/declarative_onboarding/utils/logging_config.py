"""Logging setup and stage timing for declarative onboarding.

Console output for operators, a rotating debug log, and a separate perf log
with one line per timed stage (connect, parse, fetch, reconcile).

Environment Variables:
    DO_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    DO_LOG_FILE: Path to log file (default: ~/.declarative-onboarding/onboarding.log)
    DO_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    DO_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    setup_logging()  # once, at startup

    @timed("connect")
    async def connect(self):
        ...

    async with timed_section("fetch", device_id="bigip-1", descriptors=18):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Stage timings, kept out of the main log
perf_logger = logging.getLogger("declarative_onboarding.perf")
main_logger = logging.getLogger("declarative_onboarding")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-40s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    """Console log level from DO_LOG_LEVEL."""
    name = os.environ.get("DO_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def get_log_file() -> Path:
    """Log file path from DO_LOG_FILE."""
    default = Path.home() / ".declarative-onboarding" / "onboarding.log"
    return Path(os.environ.get("DO_LOG_FILE", str(default)))


def _rotating_handler(path: Path, fmt: str) -> RotatingFileHandler:
    max_bytes = int(os.environ.get("DO_LOG_MAX_SIZE", "10")) * 1024 * 1024
    handler = RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=int(os.environ.get("DO_LOG_BACKUPS", "5")),
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: Optional[int] = None) -> None:
    """Configure console, file and perf logging.

    Args:
        level: Console level, overrides DO_LOG_LEVEL when given
    """
    console_level = level if level is not None else get_log_level()
    log_file = get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    main_logger.setLevel(logging.DEBUG)
    main_logger.addHandler(console)
    main_logger.addHandler(_rotating_handler(log_file, LOG_FORMAT))

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(_rotating_handler(log_file.parent / "onboarding-perf.log", PERF_FORMAT))
    perf_logger.propagate = False

    main_logger.info(
        f"Logging initialized: level={logging.getLevelName(console_level)}, file={log_file}"
    )


class _StageTimer:
    """Measures one stage and writes its perf line."""

    def __init__(self, operation: str, device_id: Optional[str], extra: dict[str, Any]):
        self.operation = operation
        self.device_id = device_id
        self.extra = extra
        self.start = time.perf_counter()

    def _line(self, outcome: str) -> str:
        elapsed = (time.perf_counter() - self.start) * 1000
        line = f"{self.operation:20s} | {self.device_id or 'N/A':20s} | {elapsed:8.2f}ms | {outcome}"
        if self.extra:
            line += " | " + " | ".join(f"{k}={v}" for k, v in self.extra.items())
        return line

    def ok(self) -> None:
        perf_logger.info(self._line("OK"))

    def failed(self, error: BaseException) -> None:
        perf_logger.warning(self._line(f"FAIL: {error}"))


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator logging how long a sync or async call took.

    Args:
        operation: Stage name (e.g., "connect")
        device_id: Device identifier; defaults to `self.device_id` of the
            decorated method's instance
    """
    def decorator(func: Callable) -> Callable:
        def _timer(args: tuple) -> _StageTimer:
            dev_id = device_id
            if dev_id is None and args:
                dev_id = getattr(args[0], "device_id", None)
            return _StageTimer(operation, dev_id, {})

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            timer = _timer(args)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                timer.failed(e)
                raise
            timer.ok()
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            timer = _timer(args)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                timer.failed(e)
                raise
            timer.ok()
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Time a pipeline stage.

    Args:
        operation: Stage name
        device_id: Device identifier
        **extra: Additional context appended to the perf line
    """
    timer = _StageTimer(operation, device_id, extra)
    try:
        yield
    except Exception as e:
        timer.failed(e)
        raise
    timer.ok()
