# dentalclinic/services/notification_service.py
"""Notification dispatcher.

Notifications are written as ``pending`` rows inside the same transaction as
the state change that caused them and delivered after commit. A row becomes
``sent`` only once the gateway acknowledges it, and an appointment message
stamps its appointment in that same commit. Exhausted retries leave the row
``failed`` with the last error. Delivery is keyed by the notification id, so
delivering a row twice never sends twice.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings
from ..database import SessionLocal
from ..exceptions import ValidationError, NotFoundError
from . import notification_templates as templates
from .whatsapp_service import whatsapp_service, normalize_phone

logger = logging.getLogger(__name__)


class NotificationDispatcher:

    def __init__(self, gateway=None):
        self.gateway = gateway or whatsapp_service

    def queue(
        self,
        db: Session,
        patient: models.Patient,
        kind: str,
        args: Optional[Dict[str, Any]] = None,
        channel: models.NotificationChannel = models.NotificationChannel.whatsapp,
        appointment_id: Optional[int] = None,
        message: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> models.Notification:
        """Add a notification row to the session without committing.

        ``message`` bypasses template rendering (free text); ``phone``
        overrides the number on the patient's profile.
        """
        recipient = None
        if channel == models.NotificationChannel.whatsapp:
            recipient = normalize_phone(phone if phone is not None else patient.profile.phone)

        if message is None:
            message = templates.render(kind, **(args or {}))
        elif not message.strip():
            raise ValidationError("Message body is empty")

        notification = models.Notification(
            patient_id=patient.id,
            appointment_id=appointment_id,
            notification_type=kind,
            message=message,
            channel=channel,
            recipient=recipient,
            status=models.NotificationStatus.pending,
            attempts=0,
        )
        if channel == models.NotificationChannel.in_app:
            # In-app notifications are delivered by being stored
            notification.status = models.NotificationStatus.sent
            notification.sent_at = datetime.now(timezone.utc)

        db.add(notification)
        db.flush()
        logger.info(f"Queued {channel.value} notification {notification.id} ({kind}) for patient {patient.id}")
        return notification

    async def deliver(self, notification_id: int, db: Optional[Session] = None) -> bool:
        """Deliver a queued notification; returns True once it is recorded as sent."""
        owns_session = db is None
        if owns_session:
            db = SessionLocal()
        try:
            notification = crud.get_notification(db, notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            return await self._deliver(db, notification)
        finally:
            if owns_session:
                db.close()

    async def _deliver(self, db: Session, notification: models.Notification) -> bool:
        if notification.status == models.NotificationStatus.sent:
            return True
        if notification.channel != models.NotificationChannel.whatsapp:
            return False

        settings = get_settings()
        backoff = settings.notification_retry_backoff_seconds

        while notification.attempts < settings.notification_max_attempts:
            if notification.attempts and backoff > 0:
                await asyncio.sleep(backoff * (2 ** (notification.attempts - 1)))

            notification.attempts += 1
            result = await self.gateway.send_message(notification.recipient, notification.message)

            if result.get("success"):
                notification.status = models.NotificationStatus.sent
                notification.sent_at = datetime.now(timezone.utc)
                notification.gateway_message_id = result.get("message_id")
                notification.last_error = None
                self._mark_appointment(db, notification)
                db.commit()
                logger.info(f"Notification {notification.id} delivered on attempt {notification.attempts}")
                return True

            notification.last_error = result.get("error") or "Unknown gateway error"
            notification.status = models.NotificationStatus.failed
            db.commit()
            logger.warning(
                f"Notification {notification.id} attempt {notification.attempts} failed: {notification.last_error}"
            )

        return False

    def _mark_appointment(self, db: Session, notification: models.Notification) -> None:
        """Record an acknowledged message on its appointment, in the same commit as the row."""
        if notification.appointment_id is None:
            return
        appointment = crud.get_appointment(db, notification.appointment_id)
        if appointment is None:
            return
        if notification.notification_type == templates.APPOINTMENT_CONFIRMED:
            appointment.whatsapp_sent_at = notification.sent_at
        elif notification.notification_type == templates.CONFIRMATION_REQUEST:
            appointment.confirmation_sent = True

    async def dispatch(
        self,
        db: Session,
        patient: models.Patient,
        kind: str,
        args: Optional[Dict[str, Any]] = None,
        appointment_id: Optional[int] = None,
        message: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> models.Notification:
        """Queue, commit and deliver a WhatsApp notification in one call."""
        notification = self.queue(
            db, patient, kind, args,
            appointment_id=appointment_id, message=message, phone=phone,
        )
        db.commit()
        await self._deliver(db, notification)
        db.refresh(notification)
        return notification

    async def retry_undelivered(self, db: Session) -> int:
        """Redeliver pending/failed WhatsApp notifications that still have attempts left."""
        delivered = 0
        for notification in crud.get_undelivered_notifications(db, get_settings().notification_max_attempts):
            if await self._deliver(db, notification):
                delivered += 1
        logger.info(f"Retried undelivered notifications: {delivered} delivered")
        return delivered


dispatcher = NotificationDispatcher()
