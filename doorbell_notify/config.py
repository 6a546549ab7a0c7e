"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from doorbell_notify.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

# FCM rejects multicast messages addressed to more than 500 tokens.
FCM_MAX_BATCH_SIZE = 500


@dataclass(frozen=True)
class Settings:
  """Typed settings for the doorbell notification service."""

  environment: str
  debug: bool
  log_level: str
  aws_region: str
  dynamodb_endpoint_url: str | None
  aws_timeout_seconds: int
  devices_table: str
  user_devices_table: str
  device_index_name: str
  user_tokens_table: str
  events_table: str | None
  token_owners_table: str | None
  push_enabled: bool
  fcm_batch_size: int
  revoke_max_attempts: int
  firebase_project_id: str | None
  firebase_secret_name: str | None
  firebase_service_account_json_path: str | None


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _required_str(name: str) -> str:
  value = _optional_str(os.getenv(name))
  if value is None:
    raise ValueError(f"{name} must be set.")
  return value


def _parse_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    return int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DOORBELL_ENV", "development").strip().lower()
  debug = _parse_bool(os.getenv("DOORBELL_DEBUG"))
  log_level = (os.getenv("DOORBELL_LOG_LEVEL") or ("DEBUG" if debug else "INFO")).strip().upper()

  fcm_batch_size = _parse_int("DOORBELL_FCM_BATCH_SIZE", str(FCM_MAX_BATCH_SIZE))
  if not 1 <= fcm_batch_size <= FCM_MAX_BATCH_SIZE:
    raise ValueError(f"DOORBELL_FCM_BATCH_SIZE must be between 1 and {FCM_MAX_BATCH_SIZE}.")

  revoke_max_attempts = _parse_int("DOORBELL_REVOKE_MAX_ATTEMPTS", "3")
  if revoke_max_attempts <= 0:
    raise ValueError("DOORBELL_REVOKE_MAX_ATTEMPTS must be a positive integer.")

  aws_timeout_seconds = _parse_int("DOORBELL_AWS_TIMEOUT_SECONDS", "10")
  if aws_timeout_seconds <= 0:
    raise ValueError("DOORBELL_AWS_TIMEOUT_SECONDS must be a positive integer.")

  push_enabled = _parse_bool(os.getenv("DOORBELL_PUSH_ENABLED"), default=True)
  firebase_secret_name = _optional_str(os.getenv("FIREBASE_SECRET_NAME"))
  firebase_service_account_json_path = _optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH"))

  # Validate push credentials only when push delivery is enabled.
  if push_enabled and not (firebase_secret_name or firebase_service_account_json_path):
    raise ValueError("FIREBASE_SECRET_NAME or FIREBASE_SERVICE_ACCOUNT_JSON_PATH must be set when push notifications are enabled.")

  return Settings(
    environment=environment,
    debug=debug,
    log_level=log_level,
    aws_region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1",
    dynamodb_endpoint_url=_optional_str(os.getenv("DOORBELL_DYNAMODB_ENDPOINT_URL")),
    aws_timeout_seconds=aws_timeout_seconds,
    devices_table=_required_str("DEVICES_TABLE"),
    user_devices_table=_required_str("USER_DEVICES_TABLE"),
    device_index_name=_optional_str(os.getenv("DOORBELL_DEVICE_INDEX")) or "DeviceIdIndex",
    user_tokens_table=_required_str("USER_TOKENS_TABLE"),
    events_table=_optional_str(os.getenv("EVENTS_TABLE")),
    token_owners_table=_optional_str(os.getenv("TOKEN_OWNERS_TABLE")),
    push_enabled=push_enabled,
    fcm_batch_size=fcm_batch_size,
    revoke_max_attempts=revoke_max_attempts,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_secret_name=firebase_secret_name,
    firebase_service_account_json_path=firebase_service_account_json_path,
  )
