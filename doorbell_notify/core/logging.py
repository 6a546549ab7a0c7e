import logging
import sys
import threading
from types import TracebackType

from doorbell_notify.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

_LOGGING_INITIALIZED = False
_LOGGING_LOCK = threading.Lock()


class TruncatedFormatter(logging.Formatter):
  """Formatter that truncates the stack trace to the last few lines."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    import traceback

    lines = traceback.format_exception(*ei)
    # Keep header + last 5 lines of traceback
    if len(lines) > 6:
      return "".join(lines[:1] + ["    ...\n"] + lines[-5:])
    return "".join(lines)


def _build_handler() -> logging.Handler:
  # Lambda ships stdout to CloudWatch, so a single stream handler is enough.
  stream = logging.StreamHandler(sys.stdout)
  stream.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return stream


def setup_logging(settings: Settings) -> None:
  """Route root, uvicorn and library loggers through one stdout handler."""
  handler = _build_handler()
  level = logging.getLevelName(settings.log_level)
  if not isinstance(level, int):
    level = logging.INFO

  for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
    log = logging.getLogger(logger_name)
    log.handlers = [handler]
    log.propagate = False

  logging.basicConfig(level=level, handlers=[handler], force=True)

  # botocore and the Google clients are chatty at DEBUG.
  for noisy in ("botocore", "boto3", "urllib3", "google"):
    logging.getLogger(noisy).setLevel(max(level, logging.INFO))


def initialize_logging(settings: Settings) -> None:
  """Initialize logging once per process."""
  global _LOGGING_INITIALIZED
  if _LOGGING_INITIALIZED:
    return

  with _LOGGING_LOCK:
    if _LOGGING_INITIALIZED:
      return
    setup_logging(settings)
    _LOGGING_INITIALIZED = True

  logging.getLogger("doorbell_notify.core.logging").info("Logging initialized level=%s environment=%s", settings.log_level, settings.environment)
