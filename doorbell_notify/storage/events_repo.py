"""Repository helpers for the doorbell event ledger."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from doorbell_notify.notifications.composer import DOORBELL_EVENT_TYPE, format_timestamp
from doorbell_notify.notifications.contracts import DispatchOutcome, EventLedger

logger = logging.getLogger(__name__)


class DynamoEventLedger(EventLedger):
  """Append dispatch outcomes to the events table keyed by `eventId`."""

  def __init__(self, *, table: Any, event_type: str = DOORBELL_EVENT_TYPE) -> None:
    self._table = table
    self._event_type = event_type

  def record(self, *, device_id: str, event_id: str, timestamp: datetime, outcome: DispatchOutcome) -> None:
    """Insert one ledger row for a dispatched event."""
    item = {
      "eventId": event_id,
      "deviceId": device_id,
      "eventType": self._event_type,
      "timestamp": format_timestamp(timestamp),
      "notificationsSent": outcome.success_count,
      "notificationsFailed": outcome.failure_count,
      "createdAt": format_timestamp(datetime.now(timezone.utc)),
    }
    self._table.put_item(Item=item)
    logger.info("Logged doorbell event event_id=%s device_id=%s", event_id, device_id)


class NullEventLedger(EventLedger):
  """No-op ledger used when no events table is configured."""

  def record(self, *, device_id: str, event_id: str, timestamp: datetime, outcome: DispatchOutcome) -> None:
    logger.debug("Event ledger disabled; dropping event_id=%s device_id=%s", event_id, device_id)
