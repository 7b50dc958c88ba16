"""
Salon endpoints: service menu, stylists and customer appointments.
"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from .. import auth, booking, crud, models, notifications, schemas
from ..database import get_db
from ..models import AppointmentStatus

router = APIRouter(tags=["Salon"])


@router.get("/salon/services", response_model=List[schemas.SalonService])
def list_services(db: Session = Depends(get_db)):
    return crud.get_salon_services(db)


@router.get("/salon/stylists", response_model=List[schemas.Stylist])
def list_stylists(db: Session = Depends(get_db)):
    return crud.get_stylists(db)


@router.post("/appointments", response_model=schemas.Appointment, status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Book an appointment (authenticated customers only).

    Raises:
        HTTPException: 404 if the service or stylist is unavailable
        HTTPException: 400 if the slot is taken or in the past
    """
    appointment = booking.book_appointment(db, current_user, request)
    service_name = appointment.service.name
    stylist_name = appointment.stylist.name if appointment.stylist else None

    notifications.create_appointment_notification(
        db, current_user.id, appointment.appointment_number, appointment.status, service_name
    )
    background_tasks.add_task(
        notifications.send_appointment_confirmation,
        current_user.email,
        current_user.full_name,
        service_name,
        appointment.scheduled_at.strftime("%A, %d %B %Y"),
        appointment.start_time,
        stylist_name,
    )
    return crud.get_appointment(db, appointment.id)


@router.get("/appointments", response_model=List[schemas.Appointment])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    upcoming: bool = False,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """The current user's appointments; `upcoming` returns open future bookings soonest first."""
    return crud.get_user_appointments(
        db, current_user.id, status=status.value if status else None, upcoming=upcoming,
        now=booking.store_now()
    )
