"""Batched multicast dispatch with per-endpoint outcome aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from doorbell_notify.config import FCM_MAX_BATCH_SIZE
from doorbell_notify.notifications.contracts import DispatchOutcome, EndpointFailure, FailureReason, MulticastSender, NotificationPayload, ProviderResult

logger = logging.getLogger(__name__)

_PERMANENT_CODES = {
  "invalid-registration-token": FailureReason.INVALID_TOKEN,
  "registration-token-not-registered": FailureReason.NOT_REGISTERED,
}
_TRANSIENT_CODES = {"server-unavailable", "internal-error", "message-rate-exceeded", "device-message-rate-exceeded", "unavailable", "quota-exceeded"}


def classify_error_code(code: str | None) -> FailureReason:
  """Map a provider error code (with or without the `messaging/` prefix) to a failure reason."""
  if not code:
    return FailureReason.UNKNOWN

  normalized = code.strip().lower().removeprefix("messaging/")
  if normalized in _PERMANENT_CODES:
    return _PERMANENT_CODES[normalized]
  if normalized in _TRANSIENT_CODES:
    return FailureReason.TRANSIENT
  return FailureReason.UNKNOWN


def iter_batches(endpoints: Sequence[str], batch_size: int) -> Iterator[list[str]]:
  """Yield consecutive batches of at most `batch_size` endpoints; the last one holds the remainder."""
  if batch_size <= 0:
    raise ValueError("batch_size must be a positive integer.")
  for start in range(0, len(endpoints), batch_size):
    yield list(endpoints[start : start + batch_size])


class _OutcomeAccumulator:
  def __init__(self) -> None:
    self.success_count = 0
    self.failures: list[EndpointFailure] = []

  def add_success(self) -> None:
    self.success_count += 1

  def add_failure(self, endpoint: str, reason: FailureReason, error_code: str | None) -> None:
    self.failures.append(EndpointFailure(endpoint=endpoint, reason=reason, error_code=error_code))

  def build(self) -> DispatchOutcome:
    return DispatchOutcome(success_count=self.success_count, failure_count=len(self.failures), failures=tuple(self.failures))


class DispatchEngine:
  """Send one payload to many endpoints in provider-sized batches."""

  def __init__(self, *, sender: MulticastSender, batch_size: int = FCM_MAX_BATCH_SIZE) -> None:
    if batch_size <= 0:
      raise ValueError("batch_size must be a positive integer.")
    self._sender = sender
    self._batch_size = batch_size

  @property
  def batch_size(self) -> int:
    return self._batch_size

  def prepare(self) -> None:
    """Initialize the provider once before any batch; failures propagate to the caller."""
    self._sender.prepare()

  def dispatch(self, endpoints: Sequence[str], payload: NotificationPayload) -> DispatchOutcome:
    """Deliver to every endpoint and return the aggregated outcome.

    Batches are sent sequentially. A batch whose provider call raises is recorded as
    UNKNOWN failures for every endpoint in it and the remaining batches are still sent.
    """
    accumulator = _OutcomeAccumulator()

    for index, batch in enumerate(iter_batches(endpoints, self._batch_size)):
      try:
        results = self._sender.send_multicast(batch, payload)
        if len(results) != len(batch):
          raise ValueError(f"Provider returned {len(results)} results for a batch of {len(batch)} tokens")
      except Exception as exc:  # noqa: BLE001
        # One failed batch must not block delivery to the rest.
        logger.error("Multicast batch failed batch_index=%s batch_size=%s error=%s", index, len(batch), exc, exc_info=True)
        for endpoint in batch:
          accumulator.add_failure(endpoint, FailureReason.UNKNOWN, None)
        continue

      self._collect(batch, results, accumulator)

    outcome = accumulator.build()
    logger.debug("Dispatch complete endpoints=%s success=%s failed=%s", len(endpoints), outcome.success_count, outcome.failure_count)
    return outcome

  @staticmethod
  def _collect(batch: list[str], results: list[ProviderResult], accumulator: _OutcomeAccumulator) -> None:
    # Results are index-aligned with the submitted batch.
    for endpoint, result in zip(batch, results):
      if result.success:
        accumulator.add_success()
        continue
      reason = classify_error_code(result.error_code)
      accumulator.add_failure(endpoint, reason, result.error_code)
