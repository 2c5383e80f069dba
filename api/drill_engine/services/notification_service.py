"""
Notification service for assignment, completion and review events.

Notifications are built from already-committed state and handed to a scheduler
(FastAPI BackgroundTasks in the API, a daemon thread otherwise). Delivery goes over
two independent channels, email and push; a failing channel is logged and never
raised back to the caller.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from drill_engine.core.config import settings

logger = logging.getLogger(__name__)

# Callable with the BackgroundTasks.add_task signature: schedule(func, *args)
NotificationScheduler = Callable[..., Any]


class NotificationKind(str, Enum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    REVIEWED = "reviewed"


@dataclass
class Notification:
    """One message to one recipient, ready for delivery."""
    kind: NotificationKind
    recipient_id: int
    recipient_email: Optional[str]
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


def _drill_url(drill_id: int) -> str:
    return f"{settings.app_base_url}/account/drills/{drill_id}"


def build_assigned_notification(learner, drill, assigner, due_date: Optional[datetime]) -> Notification:
    """Message telling a learner a drill was assigned to them."""
    due_text = f" Due {due_date.strftime('%b %d, %Y')}." if due_date else ""
    return Notification(
        kind=NotificationKind.ASSIGNED,
        recipient_id=learner.id,
        recipient_email=learner.email,
        title="New Drill Assigned!",
        body=f'{assigner.display_name} assigned you "{drill.title}".{due_text}',
        data={
            "drill_id": drill.id,
            "drill_type": drill.type,
            "url": _drill_url(drill.id),
        },
    )


def build_completed_notification(tutor, learner, drill, assignment_id: int, score: int) -> Notification:
    """Message telling the assigner that a learner completed a drill."""
    return Notification(
        kind=NotificationKind.COMPLETED,
        recipient_id=tutor.id,
        recipient_email=tutor.email,
        title="Drill Completed",
        body=f'{learner.display_name} completed "{drill.title}" with a score of {score}%.',
        data={
            "drill_id": drill.id,
            "assignment_id": assignment_id,
            "learner_id": learner.id,
            "score": score,
        },
    )


def build_reviewed_notification(learner, reviewer, drill, attempt_id: int, score: int, all_correct: bool) -> Notification:
    """Message telling a learner their submission was reviewed."""
    if all_correct:
        body = f'{reviewer.display_name} reviewed "{drill.title}": everything was correct! Score: {score}%.'
    else:
        body = f'{reviewer.display_name} reviewed "{drill.title}". Score: {score}%. Check the corrections.'
    return Notification(
        kind=NotificationKind.REVIEWED,
        recipient_id=learner.id,
        recipient_email=learner.email,
        title="Your Drill Was Reviewed",
        body=body,
        data={
            "drill_id": drill.id,
            "attempt_id": attempt_id,
            "score": score,
            "all_correct": all_correct,
            "url": _drill_url(drill.id),
        },
    )


def send_email_notification(notification: Notification) -> bool:
    """
    Send a notification through the transactional email API.

    Returns:
        True if sent, False if the channel is not configured or there is no address

    Raises:
        requests.exceptions.RequestException: If the API call fails
    """
    if not settings.email_api_url:
        logger.warning(f"Email channel not configured; skipping {notification.kind.value} email to user {notification.recipient_id}")
        return False
    if not notification.recipient_email:
        logger.warning(f"User {notification.recipient_id} has no email address; skipping email")
        return False

    response = requests.post(
        settings.email_api_url,
        json={
            "from": settings.email_from,
            "to": notification.recipient_email,
            "subject": notification.title,
            "text": notification.body,
        },
        headers={"Authorization": f"Bearer {settings.email_api_key}"},
        timeout=10,
    )
    response.raise_for_status()
    return True


def send_push_notification(notification: Notification) -> bool:
    """
    Send a notification through the push gateway.

    Returns:
        True if sent, False if the channel is not configured

    Raises:
        requests.exceptions.RequestException: If the API call fails
    """
    if not settings.push_api_url:
        logger.warning(f"Push channel not configured; skipping {notification.kind.value} push to user {notification.recipient_id}")
        return False

    response = requests.post(
        settings.push_api_url,
        json={
            "user_id": notification.recipient_id,
            "title": notification.title,
            "body": notification.body,
            "type": notification.kind.value,
            "data": notification.data,
        },
        timeout=10,
    )
    response.raise_for_status()
    return True


def deliver_notification(notification: Notification) -> Dict[str, bool]:
    """
    Deliver one notification over every channel.

    Each channel is isolated: a failure is logged with its context and the other
    channel is still attempted. Never raises.

    Returns:
        Dict of channel name -> delivered flag
    """
    channels = {
        "email": send_email_notification,
        "push": send_push_notification,
    }
    delivered = {}
    for channel, send in channels.items():
        try:
            delivered[channel] = send(notification)
        except Exception as e:
            delivered[channel] = False
            logger.error(
                f"Failed to send {notification.kind.value} {channel} notification "
                f"to user {notification.recipient_id} ({notification.recipient_email}): {str(e)}"
            )
    return delivered


def run_in_thread(func: Callable[..., Any], *args: Any) -> None:
    """Default scheduler: run the delivery in a daemon thread."""
    thread = threading.Thread(target=func, args=args, daemon=True)
    thread.start()


def dispatch_notifications(
    notifications: List[Notification],
    schedule: Optional[NotificationScheduler] = None,
) -> int:
    """
    Schedule delivery of notifications without waiting for them.

    Must be called after the state change they describe has been committed.

    Args:
        notifications: Messages to deliver
        schedule: Scheduler with the BackgroundTasks.add_task signature

    Returns:
        Number of notifications scheduled
    """
    scheduler = schedule or run_in_thread
    scheduled = 0
    for notification in notifications:
        try:
            scheduler(deliver_notification, notification)
            scheduled += 1
        except Exception as e:
            logger.error(f"Failed to schedule {notification.kind.value} notification "
                         f"for user {notification.recipient_id}: {str(e)}")
    return scheduled
