from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wellness.core import config
from wellness.database import SessionLocal, ensure_appointment_schema
from wellness.scheduling.errors import (
    Conflict,
    InvalidInput,
    InvalidState,
    NotFound,
    SchedulingError,
    Unavailable,
)
from wellness.scheduling.service import SchedulingService
from wellness.scheduling.types import Appointment, AppointmentStatus, BookingRequest, TimeSlot
from wellness.stores.locks import CounselorLockRegistry
from wellness.stores.sql import SqlAppointmentStore, SqlCounselorDirectory

router = APIRouter(tags=['scheduling'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_CANCEL_REASON_LENGTH = 300

scheduling_settings = config.load_scheduling_settings()
counselor_locks = CounselorLockRegistry(timeout_seconds=scheduling_settings.store_timeout_seconds)

_ERROR_STATUS = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    InvalidState: status.HTTP_409_CONFLICT,
    Unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    counselor_id: int | None = None
    student_id: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    def to_booking_request(self) -> BookingRequest:
        return BookingRequest(
            counselor_id=self.counselor_id,
            student_id=self.student_id,
            start_time=self.start_time,
            end_time=self.end_time,
            notes=self.notes,
        )


class RescheduleAppointmentRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class CancelAppointmentRequest(BaseModel):
    reason: str = ''

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) > MAX_CANCEL_REASON_LENGTH:
            raise ValueError(f'Cancellation reason must be {MAX_CANCEL_REASON_LENGTH} characters or fewer.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    counselor_id: int
    student_id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: AppointmentStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            counselor_id=appointment.counselor_id,
            student_id=appointment.student_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            duration_minutes=int(appointment.interval.duration.total_seconds() // 60),
            status=appointment.status,
            notes=appointment.notes,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class TimeSlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> 'TimeSlotResponse':
        return cls(
            start_time=slot.start,
            end_time=slot.end,
            duration_minutes=int(slot.duration.total_seconds() // 60),
        )


class ConflictCheckResponse(BaseModel):
    counselor_id: int
    start_time: datetime
    end_time: datetime
    has_conflict: bool


def to_http_error(exc: SchedulingError) -> HTTPException:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

    if isinstance(exc, Conflict):
        return HTTPException(
            status_code=status_code,
            detail={'message': exc.user_message, 'conflicting_appointment_ids': exc.conflicting_ids},
        )

    return HTTPException(status_code=status_code, detail=exc.user_message)


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    ensure_database_ready()
    return SchedulingService(
        store=SqlAppointmentStore(db, counselor_locks),
        counselors=SqlCounselorDirectory(db),
        settings=scheduling_settings,
    )


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = service.book(data.to_booking_request())
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


@router.put('/appointments/{appointment_id}', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = service.reschedule(appointment_id, data.start_time, data.end_time, notes=data.notes)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


@router.post('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    reason = data.reason if data else ''

    try:
        appointment = service.cancel(appointment_id, reason)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


@router.post('/appointments/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = service.complete(appointment_id)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


def _query_appointments(
    service: SchedulingService,
    student_id: int | None,
    counselor_id: int | None,
    appointment_status: AppointmentStatus | None,
    start: datetime | None,
    end: datetime | None,
) -> list[Appointment]:
    if start is not None or end is not None:
        if start is None or end is None:
            raise InvalidInput('Both start and end are required to filter by date.')
        appointments = service.appointments_between(start, end, status=appointment_status, counselor_id=counselor_id)
    elif counselor_id is not None:
        appointments = service.appointments_for_counselor(counselor_id)
    elif student_id is not None:
        appointments = service.appointments_for_student(student_id)
    else:
        raise InvalidInput('Filter by student_id, counselor_id, or a start/end range.')

    return [
        appointment
        for appointment in appointments
        if (student_id is None or appointment.student_id == student_id)
        and (counselor_id is None or appointment.counselor_id == counselor_id)
        and (appointment_status is None or appointment.status is appointment_status)
    ]


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    student_id: int | None = Query(default=None, gt=0),
    counselor_id: int | None = Query(default=None, gt=0),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointments = _query_appointments(service, student_id, counselor_id, appointment_status, start, end)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]


@router.get('/appointments/export')
def export_appointments(
    student_id: int | None = Query(default=None, gt=0),
    counselor_id: int | None = Query(default=None, gt=0),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointments = _query_appointments(service, student_id, counselor_id, appointment_status, start, end)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return Response(
        content=service.export_csv(appointments),
        media_type='text/csv',
        headers={'Content-Disposition': 'attachment; filename="appointments.csv"'},
    )


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = service.get_appointment(appointment_id)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


@router.get('/counselors/{counselor_id}/slots', response_model=list[TimeSlotResponse])
def list_available_slots(
    counselor_id: int,
    day: date = Query(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        slots = service.find_available_slots(counselor_id, day)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return [TimeSlotResponse.from_slot(slot) for slot in slots]


@router.get('/counselors/{counselor_id}/conflicts', response_model=ConflictCheckResponse)
def check_conflict(
    counselor_id: int,
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    exclude_id: int | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        has_conflict = service.has_conflict(counselor_id, start_time, end_time, exclude_id=exclude_id)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return ConflictCheckResponse(
        counselor_id=counselor_id,
        start_time=start_time,
        end_time=end_time,
        has_conflict=has_conflict,
    )
