"""DynamoDB-backed device directory."""

from __future__ import annotations

from typing import Any

from doorbell_notify.notifications.contracts import DEFAULT_LOCATION, DeviceDirectory, DeviceInfo


class DynamoDeviceDirectory(DeviceDirectory):
  """Resolve device metadata from the devices table keyed by `deviceId`."""

  def __init__(self, *, table: Any) -> None:
    self._table = table

  def lookup(self, device_id: str) -> DeviceInfo | None:
    response = self._table.get_item(Key={"deviceId": device_id})
    item = response.get("Item")
    if not item:
      return None
    return DeviceInfo(device_id=device_id, name=str(item.get("name") or device_id), location=str(item.get("location") or DEFAULT_LOCATION))
