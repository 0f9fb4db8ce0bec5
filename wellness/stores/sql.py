from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wellness.models.appointment import AppointmentRecord
from wellness.models.counselor import CounselorRecord
from wellness.scheduling.errors import StoreConflictError, StoreError
from wellness.scheduling.types import Appointment, AppointmentStatus
from wellness.stores.locks import CounselorLockRegistry


def _to_appointment(record: AppointmentRecord) -> Appointment:
    return Appointment(
        id=record.id,
        counselor_id=record.counselor_id,
        student_id=record.student_id,
        start_time=record.start_time,
        end_time=record.end_time,
        status=AppointmentStatus(record.status),
        notes=record.notes,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _copy_onto(record: AppointmentRecord, appointment: Appointment) -> None:
    record.counselor_id = appointment.counselor_id
    record.student_id = appointment.student_id
    record.start_time = appointment.start_time
    record.end_time = appointment.end_time
    record.status = appointment.status.value
    record.notes = appointment.notes
    record.created_at = appointment.created_at
    record.updated_at = appointment.updated_at


class SqlAppointmentStore:
    def __init__(self, session: Session, locks: CounselorLockRegistry):
        self.session = session
        self.locks = locks

    def save(self, appointment: Appointment) -> Appointment:
        try:
            if appointment.id is None:
                record = AppointmentRecord()
                self.session.add(record)
            else:
                record = self.session.get(AppointmentRecord, appointment.id)
                if record is None:
                    raise StoreError(f'Appointment {appointment.id} vanished before it could be updated')
            _copy_onto(record, appointment)
            self.session.commit()
            self.session.refresh(record)
            return _to_appointment(record)
        except IntegrityError as exc:
            self.session.rollback()
            raise StoreConflictError('Appointment violates a storage constraint') from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError('Could not save appointment') from exc

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        record = self._run(lambda: self.session.get(AppointmentRecord, appointment_id))
        return _to_appointment(record) if record else None

    def find_by_counselor_and_date_range(self, counselor_id: int, start: datetime, end: datetime) -> List[Appointment]:
        rows = self._run(
            lambda: self.session.query(AppointmentRecord).filter(
                AppointmentRecord.counselor_id == counselor_id,
                AppointmentRecord.start_time < end,
                AppointmentRecord.end_time > start,
            ).order_by(AppointmentRecord.start_time.asc(), AppointmentRecord.id.asc()).all()
        )
        return [_to_appointment(row) for row in rows]

    def count_by_student_and_date_range(
        self,
        student_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        def count() -> int:
            query = self.session.query(func.count(AppointmentRecord.id)).filter(
                AppointmentRecord.student_id == student_id,
                AppointmentRecord.status != AppointmentStatus.CANCELLED.value,
                AppointmentRecord.start_time >= start,
                AppointmentRecord.start_time < end,
            )
            if exclude_appointment_id is not None:
                query = query.filter(AppointmentRecord.id != exclude_appointment_id)
            return query.scalar() or 0

        return self._run(count)

    def find_by_student(self, student_id: int) -> List[Appointment]:
        rows = self._run(
            lambda: self.session.query(AppointmentRecord)
            .filter(AppointmentRecord.student_id == student_id)
            .order_by(AppointmentRecord.start_time.asc(), AppointmentRecord.id.asc())
            .all()
        )
        return [_to_appointment(row) for row in rows]

    def find_by_counselor(self, counselor_id: int) -> List[Appointment]:
        rows = self._run(
            lambda: self.session.query(AppointmentRecord)
            .filter(AppointmentRecord.counselor_id == counselor_id)
            .order_by(AppointmentRecord.start_time.asc(), AppointmentRecord.id.asc())
            .all()
        )
        return [_to_appointment(row) for row in rows]

    def find_between(
        self,
        start: datetime,
        end: datetime,
        status: Optional[AppointmentStatus] = None,
        counselor_id: Optional[int] = None,
    ) -> List[Appointment]:
        def query_rows():
            query = self.session.query(AppointmentRecord).filter(
                AppointmentRecord.start_time >= start,
                AppointmentRecord.start_time <= end,
            )
            if status is not None:
                query = query.filter(AppointmentRecord.status == status.value)
            if counselor_id is not None:
                query = query.filter(AppointmentRecord.counselor_id == counselor_id)
            return query.order_by(AppointmentRecord.start_time.asc(), AppointmentRecord.id.asc()).all()

        return [_to_appointment(row) for row in self._run(query_rows)]

    @contextmanager
    def counselor_lock(self, counselor_id: int):
        with self.locks.hold(counselor_id):
            # Row lock keeps other processes out on databases that honour FOR UPDATE.
            self._run(
                lambda: self.session.query(CounselorRecord.id)
                .filter(CounselorRecord.id == counselor_id)
                .with_for_update()
                .first()
            )
            try:
                yield
            finally:
                if self.session.in_transaction():
                    self.session.rollback()

    def _run(self, operation):
        try:
            return operation()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError('Appointment store query failed') from exc


class SqlCounselorDirectory:
    def __init__(self, session: Session):
        self.session = session

    def exists(self, counselor_id: int) -> bool:
        try:
            found = self.session.query(CounselorRecord.id).filter(
                CounselorRecord.id == counselor_id,
                CounselorRecord.is_active.is_(True),
            ).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f'Could not look up counselor {counselor_id}') from exc
        return found is not None
