from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from medibook.auth.dependencies import get_db
from medibook.routes.common import ensure_database_ready, service_errors
from medibook.scheduling import reservations
from medibook.scheduling.availability import format_clock_time

router = APIRouter(tags=['doctors'])


class OpenSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: list[str]


class WorkingHoursResponse(BaseModel):
    doctor_id: int
    working_hours: dict[str, list[dict[str, str]]]


@router.get('/{doctor_id}/slots', response_model=OpenSlotsResponse)
def list_open_slots(
    doctor_id: int,
    day: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        slots = reservations.list_open_slots(db, doctor_id, day)

    return OpenSlotsResponse(
        doctor_id=doctor_id,
        date=day,
        slots=[format_clock_time(slot) for slot in slots],
    )


@router.get('/{doctor_id}/working-hours', response_model=WorkingHoursResponse)
def get_working_hours(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors():
        working_hours = reservations.get_working_hours(db, doctor_id)

    return WorkingHoursResponse(doctor_id=doctor_id, working_hours=working_hours.to_json())
