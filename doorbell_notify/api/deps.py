"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from doorbell_notify.config import get_settings
from doorbell_notify.notifications.factory import build_notification_pipeline
from doorbell_notify.notifications.pipeline import DoorbellNotificationPipeline


@lru_cache(maxsize=1)
def get_pipeline() -> DoorbellNotificationPipeline:
  """Build the notification pipeline once per process."""
  return build_notification_pipeline(get_settings())
