import asyncio
from typing import Any

from mangum import Mangum

from doorbell_notify.api.deps import get_pipeline
from doorbell_notify.config import get_settings
from doorbell_notify.core.logging import initialize_logging
from doorbell_notify.main import app

http_handler = Mangum(app, lifespan="auto")


def handler(event: dict[str, Any] | None = None, _context: Any | None = None) -> dict[str, Any]:
  """Lambda entrypoint for doorbell events published directly by the IoT rule."""
  initialize_logging(get_settings())
  pipeline = get_pipeline()

  # The runtime freezes once the handler returns, so hygiene is drained after the response is built.
  response = asyncio.run(pipeline.process_and_drain(event or {}))
  return response.to_lambda()
