# medibot/services/assignment_service.py
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..exceptions import DoctorNotFound, NoAvailableDoctors

logger = structlog.get_logger(__name__)


def _snapshot(doctor: models.Doctor) -> schemas.DoctorAssignment:
    return schemas.DoctorAssignment(
        doctor_id=doctor.id,
        doctor_name=doctor.name,
        doctor_email=doctor.email,
        consultation_fee=doctor.consultation_fee,
    )


def filter_by_specialty(doctors: List[models.Doctor], specialty: Optional[str]) -> List[models.Doctor]:
    """Case-insensitive substring match, falling back to the whole pool on no match."""
    if not specialty:
        return doctors
    wanted = specialty.strip().lower()
    matched = [d for d in doctors if wanted in (d.specialty or "").lower()]
    if not matched:
        logger.info("specialty_unmatched_fallback", specialty=specialty, pool_size=len(doctors))
        return doctors
    return matched


def select_doctor(
    db: Session,
    doctor_id: Optional[int] = None,
    specialty: Optional[str] = None,
) -> schemas.DoctorAssignment:
    """Bind an appointment request to exactly one doctor.

    An explicit ``doctor_id`` is honoured as-is, including inactive doctors.
    Otherwise the active doctor with the fewest pending appointments wins,
    ties going to the first one in roster order. Reads only.

    Two concurrent bookings can observe the same counts and pick the same
    doctor; booking capacity is not a hard limit, so no claim step is taken.
    """
    if doctor_id is not None:
        doctor = crud.get_doctor(db, doctor_id)
        if doctor is None:
            raise DoctorNotFound(doctor_id)
        if doctor.status != models.DoctorStatus.active:
            logger.warning("explicit_inactive_doctor", doctor_id=doctor_id)
        return _snapshot(doctor)

    candidates = filter_by_specialty(crud.get_active_doctors(db), specialty)
    if not candidates:
        raise NoAvailableDoctors(specialty)

    selected = None
    lowest = None
    for doctor in candidates:
        pending = crud.count_pending_appointments(db, doctor.id)
        if lowest is None or pending < lowest:
            selected, lowest = doctor, pending

    logger.info(
        "doctor_assigned",
        doctor_id=selected.id,
        pending=lowest,
        candidates=len(candidates),
        specialty=specialty,
    )
    return _snapshot(selected)
