from __future__ import annotations

import pytest
from botocore.exceptions import ClientError
from conftest import FakeTable

from doorbell_notify.notifications.contracts import SubscriberStoreError
from doorbell_notify.storage.subscribers_repo import DynamoSubscriberStore


def _store(user_tokens: FakeTable, *, user_devices: FakeTable | None = None, token_owners: FakeTable | None = None, attempts: int = 3) -> DynamoSubscriberStore:
  return DynamoSubscriberStore(user_devices_table=user_devices or FakeTable("grantId"), device_index_name="DeviceIdIndex", user_tokens_table=user_tokens, token_owners_table=token_owners, max_update_attempts=attempts)


def test_list_user_ids_follows_pagination_and_dedupes():
  grants = [{"grantId": f"g{index}", "userId": f"u{index % 3}", "deviceId": "dev1"} for index in range(7)]
  grants.append({"grantId": "other", "userId": "u9", "deviceId": "dev2"})
  user_devices = FakeTable("grantId", grants, page_size=2)

  store = _store(FakeTable("userId"), user_devices=user_devices)

  assert store.list_user_ids("dev1") == ["u0", "u1", "u2"]
  assert user_devices.count("query") == 4


def test_get_tokens_for_unknown_user_is_empty():
  store = _store(FakeTable("userId", [{"userId": "u1", "fcmTokens": ["a", "b"]}, {"userId": "u2"}]))

  assert store.get_tokens("u1") == ["a", "b"]
  assert store.get_tokens("u2") == []
  assert store.get_tokens("missing") == []


def test_remove_token_by_scan_is_idempotent():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA", "tokB"]}, {"userId": "u2", "fcmTokens": ["tokB", "tokC", "tokB"]}], page_size=1)
  store = _store(user_tokens)

  assert store.remove_token("tokB") == 2
  after_first = {user_id: list(item["fcmTokens"]) for user_id, item in user_tokens.items.items()}
  assert after_first == {"u1": ["tokA"], "u2": ["tokC"]}

  assert store.remove_token("tokB") == 0
  assert {user_id: list(item["fcmTokens"]) for user_id, item in user_tokens.items.items()} == after_first
  assert user_tokens.count("update_item") == 2


def test_remove_token_retries_when_list_changes_concurrently():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA", "tokB"]}])

  def _concurrent_add(table: FakeTable) -> None:
    table.items["u1"]["fcmTokens"].append("tokNew")

  user_tokens.before_update = _concurrent_add
  store = _store(user_tokens)

  assert store.remove_token("tokB") == 1
  assert user_tokens.items["u1"]["fcmTokens"] == ["tokA", "tokNew"]
  assert user_tokens.count("update_item") == 2


def test_remove_token_gives_up_after_max_attempts():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA"]}])
  store = _store(user_tokens, attempts=2)

  def _always_conflict(**kwargs):
    raise ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": "conflict"}}, "UpdateItem")

  user_tokens.update_item = _always_conflict

  with pytest.raises(SubscriberStoreError):
    store.remove_token("tokA")


def test_remove_token_propagates_other_client_errors():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA"]}])
  store = _store(user_tokens)

  def _throttled(**kwargs):
    raise ClientError({"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, "UpdateItem")

  user_tokens.update_item = _throttled

  with pytest.raises(ClientError):
    store.remove_token("tokA")


def test_remove_token_uses_owner_table_instead_of_scan():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA", "tokB"]}])
  token_owners = FakeTable("token", [{"token": "tokB", "userId": "u1"}])
  store = _store(user_tokens, token_owners=token_owners)

  assert store.remove_token("tokB") == 1
  assert user_tokens.items["u1"]["fcmTokens"] == ["tokA"]
  assert user_tokens.count("scan") == 0
  assert "tokB" not in token_owners.items

  assert store.remove_token("tokB") == 0


def test_remove_token_without_owner_row_falls_back_to_scan():
  user_tokens = FakeTable("userId", [{"userId": "u1", "fcmTokens": ["tokA", "tokB"]}, {"userId": "u2", "fcmTokens": ["tokB"]}])
  token_owners = FakeTable("token", [])
  store = _store(user_tokens, token_owners=token_owners)

  assert store.remove_token("tokB") == 2
  assert user_tokens.items["u1"]["fcmTokens"] == ["tokA"]
  assert user_tokens.items["u2"]["fcmTokens"] == []
  assert user_tokens.count("scan") == 1
