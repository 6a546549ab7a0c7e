import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from doorbell_notify.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and validate configuration before serving requests."""
  from doorbell_notify.config import get_settings

  # Settings errors are fatal: a misconfigured dispatcher must not accept events.
  settings = get_settings()
  initialize_logging(settings)
  logging.getLogger("doorbell_notify.core.lifespan").info("Startup complete environment=%s push_enabled=%s", settings.environment, settings.push_enabled)

  yield
