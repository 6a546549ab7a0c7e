import json
import logging
import threading
from typing import Any

import boto3
import firebase_admin
from firebase_admin import credentials

from doorbell_notify.config import Settings
from doorbell_notify.notifications.contracts import PushProviderError

logger = logging.getLogger(__name__)

_app: firebase_admin.App | None = None
_app_lock = threading.Lock()


def _load_service_account(settings: Settings) -> dict[str, Any] | str:
  """Return the service account as a parsed secret or a file path."""
  if settings.firebase_service_account_json_path:
    return settings.firebase_service_account_json_path

  if not settings.firebase_secret_name:
    raise PushProviderError("No Firebase service account source configured.")

  # Pull the service account JSON from Secrets Manager so it never lives in the deployment bundle.
  client = boto3.client("secretsmanager", region_name=settings.aws_region)
  secret = client.get_secret_value(SecretId=settings.firebase_secret_name)
  try:
    return json.loads(secret["SecretString"])
  except (KeyError, TypeError, json.JSONDecodeError) as exc:
    raise PushProviderError(f"Firebase secret {settings.firebase_secret_name} is not a JSON service account.") from exc


def initialize_firebase(settings: Settings) -> firebase_admin.App:
  """Initialize the Firebase Admin SDK once per process and return the app."""
  global _app
  if _app is not None:
    return _app

  # Concurrent first callers block here so only one of them initializes the SDK.
  with _app_lock:
    if _app is not None:
      return _app

    try:
      service_account = _load_service_account(settings)
      cred = credentials.Certificate(service_account)
      project_id = settings.firebase_project_id
      if project_id is None and isinstance(service_account, dict):
        project_id = service_account.get("project_id")
      options = {"projectId": project_id} if project_id else None
      _app = firebase_admin.initialize_app(cred, options)
    except PushProviderError:
      raise
    except Exception as exc:
      logger.error("Failed to initialize Firebase Admin SDK: %s", exc)
      raise PushProviderError(f"Failed to initialize Firebase Admin SDK: {exc}") from exc

    logger.info("Firebase Admin SDK initialized project_id=%s", project_id)
    return _app


def reset_firebase_app() -> None:
  """Forget the cached app handle; used by tests that patch the SDK."""
  global _app
  with _app_lock:
    _app = None
