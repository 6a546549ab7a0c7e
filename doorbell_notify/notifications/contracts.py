"""Contracts for doorbell notification fan-out."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

DEFAULT_LOCATION = "Unknown Location"


@dataclass(frozen=True)
class DeviceEvent:
  """A single doorbell press as received from the trigger source."""

  device_id: str
  event_id: str
  timestamp: datetime


@dataclass(frozen=True)
class DeviceInfo:
  """Directory metadata for a doorbell device."""

  device_id: str
  name: str
  location: str = DEFAULT_LOCATION


@dataclass(frozen=True)
class AndroidHints:
  """Android delivery hints attached to a notification."""

  priority: str = "high"
  channel_id: str = "doorphone_notifications"
  sound: str | None = None
  default_sound: bool = False
  vibration_pattern_ms: tuple[int, ...] = ()


@dataclass(frozen=True)
class ApnsHints:
  """APNs delivery hints attached to a notification."""

  sound: str | None = None
  category: str | None = None
  mutable_content: bool = False


@dataclass(frozen=True)
class NotificationPayload:
  """Provider-agnostic push payload built once per event."""

  title: str
  body: str
  data: dict[str, str] = field(default_factory=dict, hash=False)
  sound: str | None = None
  android: AndroidHints = field(default_factory=AndroidHints)
  apns: ApnsHints = field(default_factory=ApnsHints)


class FailureReason(str, enum.Enum):
  """Why a single endpoint could not be delivered to."""

  INVALID_TOKEN = "invalid_token"
  NOT_REGISTERED = "not_registered"
  TRANSIENT = "transient"
  UNKNOWN = "unknown"

  @property
  def is_permanent(self) -> bool:
    return self in {FailureReason.INVALID_TOKEN, FailureReason.NOT_REGISTERED}


@dataclass(frozen=True)
class EndpointFailure:
  """A failed delivery for one submitted endpoint."""

  endpoint: str
  reason: FailureReason
  error_code: str | None = None


@dataclass(frozen=True)
class DispatchOutcome:
  """Aggregated result of delivering one payload to a list of endpoints."""

  success_count: int = 0
  failure_count: int = 0
  failures: tuple[EndpointFailure, ...] = ()

  @property
  def attempted(self) -> int:
    return self.success_count + self.failure_count

  def permanent_failures(self) -> list[str]:
    """Return distinct permanently failed endpoints in first-seen order."""
    seen: dict[str, None] = {}
    for failure in self.failures:
      if failure.reason.is_permanent:
        seen.setdefault(failure.endpoint, None)
    return list(seen)


@dataclass(frozen=True)
class ProviderResult:
  """Per-token result returned by a multicast provider, index-aligned with the batch."""

  success: bool
  error_code: str | None = None


class DoorbellNotifyError(Exception):
  """Base class for doorbell notification failures."""


class EventValidationError(DoorbellNotifyError):
  """Raised when a trigger event is missing required fields or is malformed."""


class DeviceNotFoundError(DoorbellNotifyError):
  """Raised when the device directory has no record for a device id."""

  def __init__(self, device_id: str) -> None:
    super().__init__(f"Device {device_id} not found")
    self.device_id = device_id


class SubscriberStoreError(DoorbellNotifyError):
  """Raised when a subscriber record cannot be updated consistently."""


class PushProviderError(DoorbellNotifyError):
  """Raised when the push provider cannot be initialized or called."""


class DeviceDirectory(Protocol):
  """Read-only lookup of device metadata."""

  def lookup(self, device_id: str) -> DeviceInfo | None:
    """Return device metadata or None when the device is unknown."""


class SubscriberStore(Protocol):
  """Storage contract for device access and per-user registration tokens."""

  def list_user_ids(self, device_id: str) -> list[str]:
    """Return ids of users with access to the device."""

  def get_tokens(self, user_id: str) -> list[str]:
    """Return the registration tokens recorded for a user."""

  def remove_token(self, token: str) -> int:
    """Remove a token from every subscriber record and return the number of records changed."""


class MulticastSender(Protocol):
  """Delivery contract for sending one payload to a batch of tokens."""

  def prepare(self) -> None:
    """Acquire provider clients; raise when the provider is misconfigured."""

  def send_multicast(self, tokens: list[str], payload: NotificationPayload) -> list[ProviderResult]:
    """Send synchronously and return one result per token in submission order."""


class EventLedger(Protocol):
  """Append-only audit log of dispatched events."""

  def record(self, *, device_id: str, event_id: str, timestamp: datetime, outcome: DispatchOutcome) -> None:
    """Persist the dispatch outcome for an event."""
