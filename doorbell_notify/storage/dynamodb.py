"""Shared DynamoDB resource construction."""

from __future__ import annotations

import logging
import os
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


def build_dynamodb_resource(*, region: str, endpoint_url: str | None = None, timeout_seconds: int = 10) -> Any:
  """Create a DynamoDB service resource with bounded client timeouts."""
  aws_kwargs: dict[str, Any] = {}
  # DynamoDB Local accepts any credentials, but boto3 still insists on having some.
  if endpoint_url and ("localhost" in endpoint_url or "127.0.0.1" in endpoint_url):
    if not os.getenv("AWS_ACCESS_KEY_ID"):
      aws_kwargs["aws_access_key_id"] = "test"
      aws_kwargs["aws_secret_access_key"] = "test"

  session = boto3.session.Session()
  return session.resource(
    "dynamodb",
    region_name=region,
    endpoint_url=endpoint_url,
    config=Config(connect_timeout=timeout_seconds, read_timeout=timeout_seconds),
    **aws_kwargs,
  )


def is_conditional_check_failure(exc: ClientError) -> bool:
  """Return True when a conditional write lost a race with another writer."""
  return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"
