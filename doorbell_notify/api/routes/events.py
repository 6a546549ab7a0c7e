"""Routes for submitting doorbell events over HTTP."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Response

from doorbell_notify.api.deps import get_pipeline
from doorbell_notify.notifications.pipeline import DoorbellNotificationPipeline

router = APIRouter()


@router.post("/events")
async def submit_doorbell_event(
  background_tasks: BackgroundTasks,
  event: dict[str, Any] = Body(...),  # noqa: B008
  pipeline: DoorbellNotificationPipeline = Depends(get_pipeline),  # noqa: B008
) -> Response:
  """
  Fan a doorbell ring out to every subscribed device.

  The body is the raw trigger: `deviceId`, optional `eventId`, and `timestamp`
  (ISO-8601 or epoch). Invalid token cleanup continues after the response is sent.
  """
  result = await pipeline.process(event)
  background_tasks.add_task(pipeline.hygiene.drain)
  return Response(content=result.body, status_code=result.status_code, headers=result.headers)
