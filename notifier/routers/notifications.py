"""Pub/Sub push endpoint that turns build events into GitHub issues."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from notifier.core.errors import DeliveryError, TemplateError
from notifier.dependencies import get_notifier
from notifier.schemas.pubsub import NotificationResponse, PushEnvelope
from notifier.services.notifier import GitHubIssuesNotifier

_logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


@router.post("/", response_model=NotificationResponse)
def receive_build_event(
    envelope: PushEnvelope,
    notifier: GitHubIssuesNotifier = Depends(get_notifier),
) -> NotificationResponse:
    try:
        build = envelope.message.decode_build()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        issue = notifier.send_notification(build)
    except TemplateError as exc:
        _logger.error("Failed to render issue for build %s: %s", build.id, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except DeliveryError as exc:
        _logger.error("Failed to deliver issue for build %s: %s", build.id, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if issue is None:
        return NotificationResponse(build_id=build.id, status="filtered")
    return NotificationResponse(
        build_id=build.id,
        status="updated" if issue.updated else "created",
        issue_number=issue.number,
        issue_url=issue.url or None,
    )
