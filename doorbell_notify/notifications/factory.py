"""Factory helpers for the doorbell notification pipeline."""

from __future__ import annotations

from functools import partial
from typing import Any

from doorbell_notify.config import Settings
from doorbell_notify.core.firebase import initialize_firebase
from doorbell_notify.notifications.contracts import EventLedger, MulticastSender
from doorbell_notify.notifications.dispatch import DispatchEngine
from doorbell_notify.notifications.hygiene import TokenHygiene
from doorbell_notify.notifications.pipeline import DoorbellNotificationPipeline
from doorbell_notify.notifications.push_sender import FcmMulticastSender, NullMulticastSender
from doorbell_notify.notifications.resolver import SubscriberResolver
from doorbell_notify.storage.devices_repo import DynamoDeviceDirectory
from doorbell_notify.storage.dynamodb import build_dynamodb_resource
from doorbell_notify.storage.events_repo import DynamoEventLedger, NullEventLedger
from doorbell_notify.storage.subscribers_repo import DynamoSubscriberStore


def build_push_sender(settings: Settings) -> MulticastSender:
  """Return the FCM sender, or a null sender when push delivery is disabled."""
  if not settings.push_enabled:
    return NullMulticastSender()
  # Firebase is initialized lazily on the first send so cold starts without events stay cheap.
  return FcmMulticastSender(app_factory=partial(initialize_firebase, settings))


def build_notification_pipeline(settings: Settings, *, dynamodb: Any | None = None, push_sender: MulticastSender | None = None) -> DoorbellNotificationPipeline:
  """Construct the pipeline and its collaborators from configuration."""
  resource = dynamodb if dynamodb is not None else build_dynamodb_resource(region=settings.aws_region, endpoint_url=settings.dynamodb_endpoint_url, timeout_seconds=settings.aws_timeout_seconds)

  store = DynamoSubscriberStore(
    user_devices_table=resource.Table(settings.user_devices_table),
    device_index_name=settings.device_index_name,
    user_tokens_table=resource.Table(settings.user_tokens_table),
    token_owners_table=resource.Table(settings.token_owners_table) if settings.token_owners_table else None,
    max_update_attempts=settings.revoke_max_attempts,
  )

  # Audit only when an events table is configured.
  if settings.events_table:
    ledger: EventLedger = DynamoEventLedger(table=resource.Table(settings.events_table))
  else:
    ledger = NullEventLedger()

  return DoorbellNotificationPipeline(
    directory=DynamoDeviceDirectory(table=resource.Table(settings.devices_table)),
    resolver=SubscriberResolver(store=store),
    engine=DispatchEngine(sender=push_sender if push_sender is not None else build_push_sender(settings), batch_size=settings.fcm_batch_size),
    hygiene=TokenHygiene(store=store),
    ledger=ledger,
  )
