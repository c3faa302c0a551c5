# medibot/routers/doctors.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, models, schemas, security
from ..database import get_db

router = APIRouter(
    prefix="/doctors",
    tags=["Doctors"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=List[schemas.DoctorResponse])
def list_doctors(
    specialty: Optional[str] = Query(None, description="Substring match; 'all' disables the filter"),
    search: Optional[str] = Query(None, description="Matches name or specialty"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    # Only admins see deactivated roster entries
    return crud.get_doctors(
        db,
        specialty=specialty,
        search=search,
        include_inactive=include_inactive and actor.is_admin,
    )


@router.get("/specialties", response_model=List[schemas.SpecialtyCount])
def list_specialties(
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return crud.get_specialties(db)


@router.post("/seed", status_code=status.HTTP_201_CREATED)
def seed_demo_doctors(
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_admin),
):
    created = crud.seed_doctors(db)
    return {"created": created}


@router.get("/{doctor_id}", response_model=schemas.DoctorResponse)
def read_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    db_doctor = crud.get_doctor(db, doctor_id)
    if db_doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    return db_doctor


@router.post("", response_model=schemas.DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    doctor: schemas.DoctorCreate,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_admin),
):
    db_doctor = crud.create_doctor(db, doctor)
    crud.create_audit_log(
        db, actor, models.AuditAction.CREATE, "Doctor", resource_id=db_doctor.id,
        details=f"Added {db_doctor.name} ({db_doctor.specialty})",
    )
    db.commit()
    db.refresh(db_doctor)
    return db_doctor


@router.patch("/{doctor_id}", response_model=schemas.DoctorResponse)
def update_doctor(
    doctor_id: int,
    doctor_update: schemas.DoctorUpdate,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_admin),
):
    db_doctor = crud.update_doctor(db, doctor_id, doctor_update)
    if db_doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    crud.create_audit_log(
        db, actor, models.AuditAction.UPDATE, "Doctor", resource_id=doctor_id,
        new_values=doctor_update.model_dump(mode="json", exclude_unset=True),
    )
    db.commit()
    db.refresh(db_doctor)
    return db_doctor


@router.delete("/{doctor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_admin),
):
    # Appointments keep their doctor snapshot after the roster entry is gone
    crud.create_audit_log(db, actor, models.AuditAction.DELETE, "Doctor", resource_id=doctor_id)
    if not crud.delete_doctor(db, doctor_id):
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
