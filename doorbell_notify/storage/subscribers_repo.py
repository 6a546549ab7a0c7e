"""DynamoDB-backed subscriber store for device access and registration tokens."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from doorbell_notify.notifications.contracts import SubscriberStore, SubscriberStoreError
from doorbell_notify.storage.dynamodb import is_conditional_check_failure

logger = logging.getLogger(__name__)


def _paginate(operation: Any, **kwargs: Any) -> Iterator[dict[str, Any]]:
  """Yield items from a query or scan, following `LastEvaluatedKey` until exhausted."""
  while True:
    response = operation(**kwargs)
    yield from response.get("Items", [])
    last_key = response.get("LastEvaluatedKey")
    if not last_key:
      return
    kwargs["ExclusiveStartKey"] = last_key


class DynamoSubscriberStore(SubscriberStore):
  """Read device subscribers and maintain per-user token lists.

  `user_devices_table` holds one item per (userId, deviceId) grant with a GSI on
  `deviceId`; `user_tokens_table` holds one item per user with an `fcmTokens` list.
  An optional `token_owners_table` maps `token` to `userId` so revocation can skip
  the full table scan. A token is registered by one user at a time, so the owner
  row names a single user; tokens without an owner row fall back to the scan.
  """

  def __init__(self, *, user_devices_table: Any, device_index_name: str, user_tokens_table: Any, token_owners_table: Any | None = None, max_update_attempts: int = 3) -> None:
    if max_update_attempts <= 0:
      raise ValueError("max_update_attempts must be a positive integer.")
    self._user_devices = user_devices_table
    self._device_index_name = device_index_name
    self._user_tokens = user_tokens_table
    self._token_owners = token_owners_table
    self._max_update_attempts = max_update_attempts

  def list_user_ids(self, device_id: str) -> list[str]:
    """Return distinct user ids with access to a device, in index order."""
    user_ids: dict[str, None] = {}
    for item in _paginate(self._user_devices.query, IndexName=self._device_index_name, KeyConditionExpression=Key("deviceId").eq(device_id)):
      user_id = item.get("userId")
      if user_id:
        user_ids.setdefault(str(user_id), None)
    return list(user_ids)

  def get_tokens(self, user_id: str) -> list[str]:
    response = self._user_tokens.get_item(Key={"userId": user_id})
    item = response.get("Item")
    if not item:
      return []
    return [str(token) for token in item.get("fcmTokens") or []]

  def remove_token(self, token: str) -> int:
    """Remove a token from every user record that holds it; absent tokens are a no-op."""
    changed = 0
    for user_id in self._find_owners(token):
      if self._remove_from_user(user_id=user_id, token=token):
        changed += 1

    if self._token_owners is not None:
      self._token_owners.delete_item(Key={"token": token})

    return changed

  def _find_owners(self, token: str) -> list[str]:
    if self._token_owners is not None:
      item = self._token_owners.get_item(Key={"token": token}).get("Item")
      if item and item.get("userId"):
        return [str(item["userId"])]
      logger.info("No token owner row; falling back to scan token_suffix=%s", token[-8:])

    # Without a reverse index the only option is a filtered scan over every user record.
    owners = [str(item["userId"]) for item in _paginate(self._user_tokens.scan, FilterExpression=Attr("fcmTokens").contains(token), ProjectionExpression="userId") if item.get("userId")]
    return list(dict.fromkeys(owners))

  def _remove_from_user(self, *, user_id: str, token: str) -> bool:
    for attempt in range(1, self._max_update_attempts + 1):
      # Always recompute from a fresh read so concurrently added tokens survive.
      item = self._user_tokens.get_item(Key={"userId": user_id}, ConsistentRead=True).get("Item")
      if not item:
        return False
      current = list(item.get("fcmTokens") or [])
      if token not in current:
        return False
      remaining = [existing for existing in current if existing != token]

      try:
        self._user_tokens.update_item(
          Key={"userId": user_id},
          UpdateExpression="SET fcmTokens = :remaining",
          ConditionExpression="fcmTokens = :expected",
          ExpressionAttributeValues={":remaining": remaining, ":expected": current},
        )
        return True
      except ClientError as exc:
        if not is_conditional_check_failure(exc):
          raise
        logger.info("Token list changed concurrently; retrying user_id=%s attempt=%s", user_id, attempt)

    raise SubscriberStoreError(f"Could not remove token for user {user_id} after {self._max_update_attempts} attempts")
