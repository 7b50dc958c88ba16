"""
Salon appointment booking.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import crud, models, schemas, validators
from .config import STORE_UTC_OFFSET_HOURS
from .errors import BookingError, InvalidStatusTransitionError, NotFoundError
from .models import AppointmentStatus
from .pricing import generate_appointment_number

logger = logging.getLogger(__name__)

APPOINTMENT_NUMBER_ATTEMPTS = 5


def store_now() -> datetime:
    """Current wall-clock time at the salon."""
    return datetime.utcnow() + timedelta(hours=STORE_UTC_OFFSET_HOURS)


def _unique_appointment_number(db: Session) -> str:
    for _ in range(APPOINTMENT_NUMBER_ATTEMPTS):
        number = generate_appointment_number()
        exists = db.query(models.Appointment.id).filter(
            models.Appointment.appointment_number == number
        ).first()
        if exists is None:
            return number
    raise BookingError("Could not allocate an appointment number, please retry")


def book_appointment(db: Session, user: models.User, request: schemas.AppointmentCreate,
                     now: Optional[datetime] = None) -> models.Appointment:
    """
    Book a salon appointment for a customer.

    Args:
        db: Database session
        user: Customer booking the appointment
        request: Service, optional stylist, date and HH:MM start time
        now: Current salon-local time, defaults to store_now()

    Returns:
        The created appointment, status PENDING

    Raises:
        NotFoundError: unknown or inactive service or stylist
        BookingError: the slot is in the past or already taken
    """
    service = crud.get_salon_service(db, request.service_id)
    if service is None or not service.is_active:
        raise NotFoundError("Service", request.service_id)

    stylist = None
    if request.stylist_id is not None:
        stylist = crud.get_stylist(db, request.stylist_id)
        if stylist is None or not stylist.is_active:
            raise NotFoundError("Stylist", request.stylist_id)

    hours, minutes = (int(part) for part in request.time.split(":"))
    scheduled_at = datetime.combine(request.appointment_date, datetime.min.time()).replace(
        hour=hours, minute=minutes
    )
    if scheduled_at <= (now or store_now()):
        raise BookingError("Appointment time must be in the future")

    if crud.find_conflicting_appointment(db, request.stylist_id, scheduled_at):
        raise BookingError("This time slot is already booked")

    end_at = scheduled_at + timedelta(minutes=service.duration_minutes)
    appointment = models.Appointment(
        appointment_number=_unique_appointment_number(db),
        user_id=user.id,
        service_id=service.id,
        stylist_id=stylist.id if stylist else None,
        scheduled_at=scheduled_at,
        start_time=request.time,
        end_time=end_at.strftime("%H:%M"),
        total_amount=service.price,
        status=AppointmentStatus.PENDING.value,
        notes=request.notes,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.appointment_number} booked by user {user.id}")
    return appointment


def change_appointment_status(db: Session, appointment: models.Appointment, new_status: str) -> models.Appointment:
    """
    Move an appointment to a new status.

    Raises:
        InvalidStatusTransitionError: the transition is not allowed
    """
    old_status = appointment.status
    is_valid, _ = validators.validate_appointment_status_transition(old_status, new_status)
    if not is_valid or old_status == new_status:
        raise InvalidStatusTransitionError(old_status, new_status)
    appointment.status = new_status
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.appointment_number} status changed: {old_status} -> {new_status}")
    return appointment
