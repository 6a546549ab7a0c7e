"""Build push payloads from doorbell events."""

from __future__ import annotations

import enum
import time
from collections.abc import Mapping
from datetime import datetime, timezone

from doorbell_notify.notifications.contracts import AndroidHints, ApnsHints, DeviceEvent, DeviceInfo, NotificationPayload

DOORBELL_EVENT_TYPE = "doorbell"
ACCESS_EVENT_TYPE = "access"
DOORBELL_SOUND = "doorbell_sound.wav"
DOORBELL_CHANNEL_ID = "doorphone_notifications"
DOORBELL_APNS_CATEGORY = "DOORBELL_CATEGORY"
DOORBELL_VIBRATION_PATTERN_MS = (0, 500, 200, 500)
DEEP_LINK_SCHEME = "doorphone"


class NotificationVariant(str, enum.Enum):
  """Client-side rendering variant selected from the payload `type` field."""

  DOORBELL = "doorbell"
  ACCESS = "access"
  GENERIC = "generic"


def default_event_id(event_type: str = DOORBELL_EVENT_TYPE, now: float | None = None) -> str:
  """Synthesize an event id from the event type and the current time in milliseconds."""
  epoch_seconds = time.time() if now is None else now
  return f"{event_type}_{int(epoch_seconds * 1000)}"


def format_timestamp(value: datetime) -> str:
  """Render a timestamp as ISO-8601 UTC with millisecond precision and a `Z` suffix."""
  if value.tzinfo is None:
    value = value.replace(tzinfo=timezone.utc)
  utc = value.astimezone(timezone.utc)
  return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def compose(event: DeviceEvent, device_info: DeviceInfo) -> NotificationPayload:
  """Build the doorbell ring notification for every subscribed endpoint."""
  # Data values must be strings for FCM, so every field is rendered up front.
  data = {
    "type": DOORBELL_EVENT_TYPE,
    "deviceId": event.device_id,
    "deviceName": device_info.name,
    "eventId": event.event_id,
    "timestamp": format_timestamp(event.timestamp),
    "location": device_info.location,
  }
  return NotificationPayload(
    title="Doorbell Ring",
    body=f"Someone is at {device_info.name}",
    data=data,
    sound=DOORBELL_SOUND,
    android=AndroidHints(priority="high", channel_id=DOORBELL_CHANNEL_ID, sound=DOORBELL_SOUND, default_sound=False, vibration_pattern_ms=DOORBELL_VIBRATION_PATTERN_MS),
    apns=ApnsHints(sound=DOORBELL_SOUND, category=DOORBELL_APNS_CATEGORY, mutable_content=True),
  )


def classify_payload_type(data: Mapping[str, str]) -> NotificationVariant:
  """Map a received data payload to the notification variant a client should render."""
  message_type = (data.get("type") or "").strip().lower()
  if message_type == DOORBELL_EVENT_TYPE:
    return NotificationVariant.DOORBELL
  if message_type == ACCESS_EVENT_TYPE:
    return NotificationVariant.ACCESS
  return NotificationVariant.GENERIC


def device_deep_link(device_id: str) -> str:
  """Return the app deep link that opens the viewer for a device."""
  return f"{DEEP_LINK_SCHEME}://device/{device_id}"
