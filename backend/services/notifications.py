"""Best-effort booking notifications.

Services publish a ``BookingEvent`` after their transaction commits.
Subscribers run synchronously; a failing subscriber is logged and never
affects the booking operation that published the event.
"""

import html
import logging
from datetime import datetime
from typing import Callable

import resend
from pydantic import BaseModel

from backend.core import config

logger = logging.getLogger(__name__)

REQUEST_SUBMITTED = 'request_submitted'
REQUEST_RECEIVED = 'request_received'
REQUEST_ACCEPTED = 'request_accepted'
REQUEST_DECLINED = 'request_declined'
BOOKING_CANCELLED = 'booking_cancelled'

EMAIL_SUBJECTS = {
    REQUEST_SUBMITTED: 'Request submitted',
    REQUEST_RECEIVED: 'New booking request',
    REQUEST_ACCEPTED: 'Request accepted',
    REQUEST_DECLINED: 'Request declined',
    BOOKING_CANCELLED: 'Booking cancelled',
}

EMAIL_BODIES = {
    REQUEST_SUBMITTED: 'Your request was submitted. Status: pending, waiting for teacher review.',
    REQUEST_RECEIVED: 'A student sent you a booking request. Review it from your dashboard.',
    REQUEST_ACCEPTED: 'Your request was accepted. Your chat with the teacher is now available.',
    REQUEST_DECLINED: 'Your request was declined. You can send another request with a different teacher or time.',
    BOOKING_CANCELLED: 'A booking was cancelled and its time slot has been released.',
}


class BookingEvent(BaseModel):
    kind: str
    booking_id: str
    student_id: str
    teacher_id: str
    status: str
    start_date_time: datetime
    recipient_email: str | None = None
    test_category: str | None = None
    test_subtype: str | None = None
    conversation_id: str | None = None


Subscriber = Callable[[BookingEvent], None]


class NotificationDispatcher:
    def __init__(self, subscribers: list[Subscriber] | None = None) -> None:
        self._subscribers: list[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event: BookingEvent) -> None:
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                logger.exception(
                    'Notification subscriber failed kind=%s booking_id=%s',
                    event.kind,
                    event.booking_id,
                )


def render_email_html(event: BookingEvent) -> str:
    category = (event.test_category or '').replace('_', ' ')
    subtype = f' ({event.test_subtype})' if event.test_subtype else ''
    when = event.start_date_time.strftime('%Y-%m-%d %H:%M UTC')
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.5;">'
        f'<h2>{html.escape(EMAIL_SUBJECTS[event.kind])}</h2>'
        f'<p><b>Test:</b> {html.escape(category + subtype)} <b>Date:</b> {when}</p>'
        f'<p>{html.escape(EMAIL_BODIES[event.kind])}</p>'
        '</div>'
    )


def send_booking_email(event: BookingEvent) -> bool:
    if not config.RESEND_API_KEY or not config.EMAIL_FROM:
        logger.info('Email not configured, skipping %s for booking %s', event.kind, event.booking_id)
        return False
    if not event.recipient_email or event.kind not in EMAIL_SUBJECTS:
        return False

    resend.api_key = config.RESEND_API_KEY
    resend.Emails.send({
        'from': config.EMAIL_FROM,
        'to': event.recipient_email,
        'subject': EMAIL_SUBJECTS[event.kind],
        'html': render_email_html(event),
    })
    logger.info('Sent %s email for booking %s', event.kind, event.booking_id)
    return True


_default_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _default_dispatcher

    if _default_dispatcher is None:
        subscribers = [send_booking_email] if config.NOTIFICATIONS_ENABLED else []
        _default_dispatcher = NotificationDispatcher(subscribers)
    return _default_dispatcher
