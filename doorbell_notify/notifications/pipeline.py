"""Doorbell event orchestration: lookup, fan-out, hygiene, audit."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.concurrency import run_in_threadpool

from doorbell_notify.notifications.composer import compose, default_event_id
from doorbell_notify.notifications.contracts import DeviceDirectory, DeviceEvent, DeviceNotFoundError, DispatchOutcome, EventLedger, EventValidationError
from doorbell_notify.notifications.dispatch import DispatchEngine
from doorbell_notify.notifications.hygiene import TokenHygiene
from doorbell_notify.notifications.resolver import SubscriberResolver

logger = logging.getLogger(__name__)

# Epoch values above this are milliseconds (year 5138 in seconds).
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


class DoorbellTrigger(BaseModel):
  """Raw trigger payload published by the doorbell."""

  device_id: str = Field(alias="deviceId", min_length=1)
  event_id: str | None = Field(default=None, alias="eventId")
  timestamp: datetime
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  @field_validator("device_id")
  @classmethod
  def strip_device_id(cls, value: str) -> str:
    normalized = value.strip()
    if not normalized:
      raise ValueError("deviceId must not be blank.")
    return normalized

  @field_validator("event_id")
  @classmethod
  def blank_event_id_is_missing(cls, value: str | None) -> str | None:
    if value is None or not value.strip():
      return None
    return value.strip()

  @field_validator("timestamp", mode="before")
  @classmethod
  def parse_epoch(cls, value: Any) -> Any:
    if isinstance(value, bool):
      raise ValueError("timestamp must be an ISO-8601 string or epoch number.")
    if isinstance(value, int | float):
      seconds = value / 1000 if abs(value) > _EPOCH_MILLIS_THRESHOLD else value
      try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
      except (OverflowError, OSError, ValueError) as exc:
        raise ValueError("timestamp is out of range.") from exc
    return value

  @field_validator("timestamp")
  @classmethod
  def assume_utc(cls, value: datetime) -> datetime:
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


def _sanitize_validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
  """Return validation errors without raw input values."""
  sanitized: list[dict[str, Any]] = []
  for error in exc.errors():
    sanitized.append({"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", "")), "type": str(error.get("type", ""))})
  return sanitized


def parse_trigger(raw: Any) -> DeviceEvent:
  """Validate a raw trigger and build the immutable event, generating an event id when absent."""
  if not isinstance(raw, Mapping):
    raise EventValidationError("Trigger event must be a JSON object.")

  try:
    trigger = DoorbellTrigger.model_validate(dict(raw))
  except ValidationError as exc:
    raise EventValidationError(json.dumps(_sanitize_validation_errors(exc))) from exc

  return DeviceEvent(device_id=trigger.device_id, event_id=trigger.event_id or default_event_id(), timestamp=trigger.timestamp)


@dataclass(frozen=True)
class PipelineResponse:
  """HTTP-style result of processing one trigger."""

  status_code: int
  body: str
  headers: dict[str, str] = field(default_factory=dict, hash=False)

  def to_lambda(self) -> dict[str, Any]:
    return {"statusCode": self.status_code, "headers": dict(self.headers), "body": self.body}


def json_response(status_code: int, content: dict[str, Any]) -> PipelineResponse:
  return PipelineResponse(status_code=status_code, body=json.dumps(content), headers={"Content-Type": "application/json"})


def text_response(status_code: int, content: str) -> PipelineResponse:
  return PipelineResponse(status_code=status_code, body=content, headers={"Content-Type": "text/plain"})


class DoorbellNotificationPipeline:
  """Process a single doorbell trigger end to end."""

  def __init__(self, *, directory: DeviceDirectory, resolver: SubscriberResolver, engine: DispatchEngine, hygiene: TokenHygiene, ledger: EventLedger) -> None:
    self._directory = directory
    self._resolver = resolver
    self._engine = engine
    self._hygiene = hygiene
    self._ledger = ledger

  @property
  def hygiene(self) -> TokenHygiene:
    return self._hygiene

  async def process(self, raw_event: Any) -> PipelineResponse:
    """Run the pipeline and convert every outcome into a response; never raises."""
    try:
      return await self._process(raw_event)
    except EventValidationError as exc:
      logger.warning("Rejected doorbell trigger error=%s", exc)
      return json_response(400, {"error": "Invalid doorbell event", "details": str(exc)})
    except DeviceNotFoundError as exc:
      logger.info("Device %s not found in directory", exc.device_id)
      return text_response(404, "Device not found")
    except Exception as exc:  # noqa: BLE001
      logger.error("Error processing doorbell notification error_type=%s", type(exc).__name__, exc_info=True)
      return json_response(500, {"error": "Failed to process doorbell notification", "details": str(exc)})

  async def process_and_drain(self, raw_event: Any) -> PipelineResponse:
    """Process a trigger, then wait for background token hygiene before returning."""
    response = await self.process(raw_event)
    await self._hygiene.drain()
    return response

  async def _process(self, raw_event: Any) -> PipelineResponse:
    event = parse_trigger(raw_event)
    logger.info("Doorbell notification event device_id=%s event_id=%s timestamp=%s", event.device_id, event.event_id, event.timestamp.isoformat())

    device_info = await run_in_threadpool(self._directory.lookup, event.device_id)
    if device_info is None:
      raise DeviceNotFoundError(event.device_id)

    endpoints = await run_in_threadpool(self._resolver.resolve_endpoints, event.device_id)
    if not endpoints:
      logger.info("No FCM tokens found for device_id=%s", event.device_id)
      return json_response(200, {"message": "No users to notify", "deviceId": event.device_id, "notificationsSent": 0, "notificationsFailed": 0})

    payload = compose(event, device_info)
    # A provider configuration fault is a pipeline error, not a per-token failure.
    await run_in_threadpool(self._engine.prepare)
    outcome = await run_in_threadpool(self._engine.dispatch, endpoints, payload)

    # Hygiene runs in the background; the response never waits on it.
    self._hygiene.schedule(outcome)
    await self._record(event, outcome)

    logger.info("Doorbell notifications sent device_id=%s event_id=%s sent=%s failed=%s", event.device_id, event.event_id, outcome.success_count, outcome.failure_count)
    return json_response(200, {"message": "Doorbell notifications sent successfully", "deviceId": event.device_id, "notificationsSent": outcome.success_count, "notificationsFailed": outcome.failure_count})

  async def _record(self, event: DeviceEvent, outcome: DispatchOutcome) -> None:
    # The ledger is best-effort and never affects the delivery result.
    try:
      await run_in_threadpool(self._ledger.record, device_id=event.device_id, event_id=event.event_id, timestamp=event.timestamp, outcome=outcome)
    except Exception as exc:  # noqa: BLE001
      logger.error("Error logging doorbell event event_id=%s error=%s", event.event_id, exc, exc_info=True)
