"""Push notification delivery implementations."""

from __future__ import annotations

import logging
from collections.abc import Callable

import firebase_admin
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from doorbell_notify.notifications.contracts import MulticastSender, NotificationPayload, ProviderResult

logger = logging.getLogger(__name__)

PUSH_DISABLED_CODE = "messaging/push-disabled"


def error_code_for_exception(exc: BaseException | None) -> str:
  """Translate a Firebase send exception into a `messaging/...` error code."""
  # Subclasses are checked before their FirebaseError bases.
  if isinstance(exc, messaging.UnregisteredError):
    return "messaging/registration-token-not-registered"
  if isinstance(exc, messaging.SenderIdMismatchError):
    return "messaging/invalid-registration-token"
  if isinstance(exc, firebase_exceptions.InvalidArgumentError):
    # INVALID_ARGUMENT also covers message-level faults shared by every token (oversized payload, reserved keys).
    if "registration token" in str(exc).lower():
      return "messaging/invalid-registration-token"
    return "messaging/invalid-argument"
  if isinstance(exc, messaging.QuotaExceededError):
    return "messaging/message-rate-exceeded"
  if isinstance(exc, firebase_exceptions.UnavailableError):
    return "messaging/server-unavailable"
  if isinstance(exc, firebase_exceptions.InternalError):
    return "messaging/internal-error"
  if isinstance(exc, firebase_exceptions.FirebaseError):
    return f"messaging/{str(exc.code).lower().replace('_', '-')}"
  return "messaging/unknown-error"


def build_messages(tokens: list[str], payload: NotificationPayload) -> list[messaging.Message]:
  """Translate a provider-agnostic payload into one FCM message per token, in token order."""
  android_hints = payload.android
  apns_hints = payload.apns
  android = messaging.AndroidConfig(
    priority=android_hints.priority,
    notification=messaging.AndroidNotification(
      channel_id=android_hints.channel_id,
      priority=android_hints.priority,
      sound=android_hints.sound,
      default_sound=android_hints.default_sound,
      vibrate_timings_millis=list(android_hints.vibration_pattern_ms) or None,
    ),
  )
  apns = messaging.APNSConfig(payload=messaging.APNSPayload(aps=messaging.Aps(sound=apns_hints.sound, category=apns_hints.category, mutable_content=apns_hints.mutable_content)))
  notification = messaging.Notification(title=payload.title, body=payload.body)
  return [messaging.Message(token=token, data=dict(payload.data), notification=notification, android=android, apns=apns) for token in tokens]


class FcmMulticastSender(MulticastSender):
  """Firebase Cloud Messaging sender for a single batch of registration tokens."""

  def __init__(self, *, app_factory: Callable[[], firebase_admin.App]) -> None:
    self._app_factory = app_factory

  def prepare(self) -> None:
    """Initialize the Firebase app; configuration faults propagate before any batch is sent."""
    self._app_factory()

  def send_multicast(self, tokens: list[str], payload: NotificationPayload) -> list[ProviderResult]:
    """Send one batch via `send_each`; provider-level failures propagate to the caller."""
    app = self._app_factory()
    response = messaging.send_each(build_messages(tokens, payload), app=app)

    results: list[ProviderResult] = []
    for send_response in response.responses:
      if send_response.success:
        results.append(ProviderResult(success=True))
      else:
        results.append(ProviderResult(success=False, error_code=error_code_for_exception(send_response.exception)))

    logger.debug("FCM batch sent tokens=%s success=%s failure=%s", len(tokens), response.success_count, response.failure_count)
    return results


class NullMulticastSender(MulticastSender):
  """Sender used when push notifications are disabled; every token is reported as undelivered."""

  def prepare(self) -> None:
    return None

  def send_multicast(self, tokens: list[str], payload: NotificationPayload) -> list[ProviderResult]:
    logger.debug("Push notifications disabled; dropping multicast tokens=%s title=%s", len(tokens), payload.title)
    return [ProviderResult(success=False, error_code=PUSH_DISABLED_CODE) for _ in tokens]
