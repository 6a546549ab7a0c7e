"""Shared fakes for DynamoDB tables and the push provider."""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest
from botocore.exceptions import ClientError

from doorbell_notify.config import Settings
from doorbell_notify.notifications.contracts import NotificationPayload, ProviderResult


def _condition_parts(condition: Any) -> tuple[str, str, Any]:
  """Split a boto3 Key/Attr condition into (operator, attribute name, value)."""
  expression = condition.get_expression()
  attribute, value = expression["values"]
  return expression["operator"], attribute.name, value


class FakeTable:
  """In-memory stand-in for a boto3 DynamoDB Table resource."""

  def __init__(self, key_name: str, items: list[dict[str, Any]] | None = None, *, page_size: int = 100) -> None:
    self.key_name = key_name
    self.page_size = page_size
    self.items: dict[str, dict[str, Any]] = {}
    self.calls: list[tuple[str, dict[str, Any]]] = []
    self.before_update: Callable[[FakeTable], None] | None = None
    for item in items or []:
      self.items[item[key_name]] = copy.deepcopy(item)

  def get_item(self, *, Key: dict[str, Any], ConsistentRead: bool = False) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("get_item", {"Key": Key}))
    item = self.items.get(Key[self.key_name])
    return {"Item": copy.deepcopy(item)} if item is not None else {}

  def put_item(self, *, Item: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("put_item", {"Item": Item}))
    self.items[Item[self.key_name]] = copy.deepcopy(Item)
    return {}

  def delete_item(self, *, Key: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("delete_item", {"Key": Key}))
    self.items.pop(Key[self.key_name], None)
    return {}

  def query(self, *, IndexName: str, KeyConditionExpression: Any, ExclusiveStartKey: dict[str, Any] | None = None) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("query", {"IndexName": IndexName}))
    _, name, value = _condition_parts(KeyConditionExpression)
    matches = [copy.deepcopy(item) for item in self.items.values() if item.get(name) == value]
    return self._page(matches, ExclusiveStartKey)

  def scan(self, *, FilterExpression: Any, ProjectionExpression: str | None = None, ExclusiveStartKey: dict[str, Any] | None = None) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("scan", {}))
    operator, name, value = _condition_parts(FilterExpression)
    assert operator == "contains"
    matches = [copy.deepcopy(item) for item in self.items.values() if value in (item.get(name) or [])]
    return self._page(matches, ExclusiveStartKey)

  def update_item(self, *, Key: dict[str, Any], UpdateExpression: str, ConditionExpression: str, ExpressionAttributeValues: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
    self.calls.append(("update_item", {"Key": Key}))
    if self.before_update is not None:
      hook, self.before_update = self.before_update, None
      hook(self)
    assert UpdateExpression == "SET fcmTokens = :remaining"
    assert ConditionExpression == "fcmTokens = :expected"
    item = self.items.get(Key[self.key_name])
    if item is None or item.get("fcmTokens") != ExpressionAttributeValues[":expected"]:
      raise ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}}, "UpdateItem")
    item["fcmTokens"] = list(ExpressionAttributeValues[":remaining"])
    return {}

  def count(self, operation: str) -> int:
    return sum(1 for name, _ in self.calls if name == operation)

  def _page(self, matches: list[dict[str, Any]], start_key: dict[str, Any] | None) -> dict[str, Any]:
    offset = int(start_key["offset"]) if start_key else 0
    page = matches[offset : offset + self.page_size]
    response: dict[str, Any] = {"Items": page}
    if offset + self.page_size < len(matches):
      response["LastEvaluatedKey"] = {"offset": offset + self.page_size}
    return response


class FakeDynamoResource:
  """Stand-in for `boto3.resource('dynamodb')` exposing named FakeTables."""

  def __init__(self, tables: dict[str, FakeTable]) -> None:
    self.tables = tables

  def Table(self, name: str) -> FakeTable:  # noqa: N802
    return self.tables[name]


class FakeMulticastSender:
  """Scriptable multicast sender recording every batch it receives."""

  def __init__(self, *, error_codes: dict[str, str] | None = None, failing_calls: set[int] | None = None, prepare_error: Exception | None = None) -> None:
    self.error_codes = error_codes or {}
    self.failing_calls = failing_calls or set()
    self.prepare_error = prepare_error
    self.prepare_calls = 0
    self.batches: list[list[str]] = []

  def prepare(self) -> None:
    self.prepare_calls += 1
    if self.prepare_error is not None:
      raise self.prepare_error

  def send_multicast(self, tokens: list[str], payload: NotificationPayload) -> list[ProviderResult]:
    call_index = len(self.batches)
    self.batches.append(list(tokens))
    if call_index in self.failing_calls:
      raise RuntimeError(f"provider unavailable for batch {call_index}")
    return [ProviderResult(success=False, error_code=self.error_codes[token]) if token in self.error_codes else ProviderResult(success=True) for token in tokens]


BASE_SETTINGS = Settings(
  environment="test",
  debug=False,
  log_level="INFO",
  aws_region="us-east-1",
  dynamodb_endpoint_url=None,
  aws_timeout_seconds=5,
  devices_table="devices",
  user_devices_table="user-devices",
  device_index_name="DeviceIdIndex",
  user_tokens_table="user-tokens",
  events_table="events",
  token_owners_table=None,
  push_enabled=True,
  fcm_batch_size=500,
  revoke_max_attempts=3,
  firebase_project_id="doorphone-test",
  firebase_secret_name=None,
  firebase_service_account_json_path="/secrets/firebase.json",
)


def make_settings(**overrides: Any) -> Settings:
  return replace(BASE_SETTINGS, **overrides)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def dynamo_tables() -> dict[str, FakeTable]:
  return {
    "devices": FakeTable("deviceId", [{"deviceId": "dev1", "name": "Front Door"}, {"deviceId": "dev2", "name": "Garage", "location": "Back Yard"}]),
    "user-devices": FakeTable("grantId", [{"grantId": "u1#dev1", "userId": "u1", "deviceId": "dev1"}, {"grantId": "u2#dev1", "userId": "u2", "deviceId": "dev1"}]),
    "user-tokens": FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA"]}, {"userId": "u2", "fcmTokens": ["tokB"]}]),
    "events": FakeTable("eventId"),
  }


@pytest.fixture
def dynamo_resource(dynamo_tables) -> FakeDynamoResource:
  return FakeDynamoResource(dynamo_tables)
