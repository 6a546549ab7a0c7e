"""Background removal of permanently invalid registration tokens."""

from __future__ import annotations

import asyncio
import logging

from starlette.concurrency import run_in_threadpool

from doorbell_notify.notifications.contracts import DispatchOutcome, SubscriberStore

logger = logging.getLogger(__name__)


class TokenHygiene:
  """Prune tokens the push provider reported as invalid or unregistered."""

  def __init__(self, *, store: SubscriberStore) -> None:
    self._store = store
    self._pending: set[asyncio.Task[None]] = set()

  async def revoke(self, endpoint: str) -> None:
    """Ensure a token is absent from every subscriber record; repeated calls are no-ops."""
    changed = await run_in_threadpool(self._store.remove_token, endpoint)
    if changed:
      logger.info("Removed invalid FCM token records=%s token_suffix=%s", changed, endpoint[-8:])
    else:
      logger.debug("Invalid FCM token already absent token_suffix=%s", endpoint[-8:])

  def schedule(self, outcome: DispatchOutcome) -> list[asyncio.Task[None]]:
    """Start one background revoke per permanently failed endpoint without awaiting them."""
    tasks: list[asyncio.Task[None]] = []
    for endpoint in outcome.permanent_failures():
      task = asyncio.create_task(self._revoke_logged(endpoint))
      self._pending.add(task)
      task.add_done_callback(self._pending.discard)
      tasks.append(task)
    return tasks

  async def drain(self) -> None:
    """Wait for every scheduled revoke to finish."""
    while self._pending:
      batch = list(self._pending)
      self._pending.difference_update(batch)
      await asyncio.gather(*batch, return_exceptions=True)

  async def _revoke_logged(self, endpoint: str) -> None:
    try:
      await self.revoke(endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Error removing invalid token token_suffix=%s error=%s", endpoint[-8:], exc, exc_info=True)
