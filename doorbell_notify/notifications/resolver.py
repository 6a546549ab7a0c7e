"""Expand a device into the registration tokens of every user who can see it."""

from __future__ import annotations

import logging

from doorbell_notify.notifications.contracts import SubscriberStore

logger = logging.getLogger(__name__)


class SubscriberResolver:
  """Two-hop lookup: device -> users with access -> each user's tokens."""

  def __init__(self, *, store: SubscriberStore) -> None:
    self._store = store

  def resolve_endpoints(self, device_id: str) -> list[str]:
    """Return every token for every subscribed user, duplicates included, in user order."""
    user_ids = self._store.list_user_ids(device_id)
    endpoints: list[str] = []

    for user_id in dict.fromkeys(user_ids):
      # A broken user record must not hide the other subscribers.
      try:
        tokens = self._store.get_tokens(user_id)
      except Exception as exc:  # noqa: BLE001
        logger.error("Token lookup failed user_id=%s device_id=%s error=%s", user_id, device_id, exc, exc_info=True)
        continue
      endpoints.extend(tokens)

    logger.debug("Resolved endpoints device_id=%s users=%s endpoints=%s", device_id, len(user_ids), len(endpoints))
    return endpoints
