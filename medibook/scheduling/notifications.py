import logging

from medibook.core import config
from medibook.models.appointment import Appointment

logger = logging.getLogger(__name__)


class Notifier:
    """Stand-in for the email/SMS sender: records appointment events in the log."""

    def send(self, event: str, appointment: Appointment) -> None:
        logger.info(
            'Notification %s for appointment %s (patient %s, doctor %s, %s %s)',
            event,
            appointment.appointment_code,
            appointment.patient_id,
            appointment.doctor_id,
            appointment.appointment_date,
            appointment.appointment_time,
        )


notifier = Notifier()


def notify(event: str, appointment: Appointment) -> None:
    """Fire-and-forget; a failed notification never undoes the committed change."""
    if not config.NOTIFICATIONS_ENABLED:
        return

    try:
        notifier.send(event, appointment)
    except Exception:
        logger.exception('Failed to send %s notification for appointment %s', event, appointment.id)
