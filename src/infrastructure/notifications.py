# src/infrastructure/notifications.py

import logging


logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"

_TEMPLATES = {
    BOOKING_CONFIRMED: (
        "Your booking {booking_id} is confirmed: seats {seats} "
        "for show {show_id} at {show_time}. Amount paid: {amount}."
    ),
    BOOKING_CANCELLED: (
        "Your booking {booking_id} for show {show_id} (seats {seats}) "
        "was cancelled. Refund issued: {refund_amount}."
    ),
}


def render_message(event_type: str, payload: dict) -> str:
    template = _TEMPLATES.get(event_type)
    if template is None:
        return f"{event_type}: {payload}"
    values = dict(payload)
    values["seats"] = ", ".join(payload.get("seats", []))
    try:
        return template.format(**values)
    except KeyError:
        return f"{event_type}: {payload}"


class LoggingNotificationSink:
    """Delivers templated messages to the application log."""

    def send(self, event_type: str, payload: dict) -> None:
        logger.info(
            "Notification to user=%s: %s",
            payload.get("user_id"),
            render_message(event_type, payload),
        )
