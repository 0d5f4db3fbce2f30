from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ...database import get_read_db, get_write_db
from ...security import get_current_employee, is_admin, require_admin, require_system_roles
from . import models, schemas, services

router = APIRouter(prefix="/organization", tags=["organization"])


# ---------------------------------------------------------------------------
# UNITS
# ---------------------------------------------------------------------------


@router.get("/units", response_model=List[schemas.UnitRead])
def list_units(
    db: Session = Depends(get_read_db),
    current: models.Employee = Depends(get_current_employee),
):
    return services.list_units(db)


@router.post("/units", response_model=schemas.UnitRead, status_code=status.HTTP_201_CREATED)
def create_unit(
    payload: schemas.UnitCreate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    unit = services.create_unit(db, **payload.model_dump())
    db.commit()
    db.refresh(unit)
    return unit


@router.patch("/units/{unit_id}", response_model=schemas.UnitRead)
def update_unit(
    unit_id: str,
    payload: schemas.UnitUpdate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    unit = services.update_unit(db, unit_id=unit_id, changes=payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(unit)
    return unit


@router.delete("/units/{unit_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_unit(
    unit_id: str,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    services.delete_unit(db, unit_id=unit_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# SECTORS
# ---------------------------------------------------------------------------


@router.get("/sectors", response_model=List[schemas.SectorRead])
def list_sectors(
    unit_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: models.Employee = Depends(get_current_employee),
):
    return services.list_sectors(db, unit_id=unit_id)


@router.post("/sectors", response_model=schemas.SectorRead, status_code=status.HTTP_201_CREATED)
def create_sector(
    payload: schemas.SectorCreate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    sector = services.create_sector(db, unit_id=payload.unit_id, name=payload.name)
    db.commit()
    db.refresh(sector)
    return sector


@router.patch("/sectors/{sector_id}", response_model=schemas.SectorRead)
def rename_sector(
    sector_id: str,
    payload: schemas.SectorUpdate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    sector = services.rename_sector(db, sector_id=sector_id, name=payload.name)
    db.commit()
    db.refresh(sector)
    return sector


@router.delete("/sectors/{sector_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sector(
    sector_id: str,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    services.delete_sector(db, sector_id=sector_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


@router.get("/employees/me", response_model=schemas.EmployeeRead)
def read_my_profile(current: models.Employee = Depends(get_current_employee)):
    return current


@router.get("/employees", response_model=List[schemas.EmployeeRead])
def list_employees(
    unit_id: Optional[str] = None,
    include_inactive: bool = False,
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: models.Employee = Depends(require_system_roles(models.SystemRole.UNIT_MANAGER)),
):
    # Unit managers only see their own unit.
    if not is_admin(current):
        unit_id = current.unit_id
    return services.list_employees(
        db,
        unit_id=unit_id,
        include_inactive=include_inactive,
        search=search,
    )


@router.post("/employees", response_model=schemas.EmployeeRead, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    data = payload.model_dump()
    employee = services.create_employee(db, employee_id=data.pop("id"), **data)
    db.commit()
    db.refresh(employee)
    return employee


@router.patch("/employees/{employee_id}", response_model=schemas.EmployeeRead)
def update_employee(
    employee_id: str,
    payload: schemas.EmployeeUpdate,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    changes = payload.model_dump(exclude_unset=True)
    if employee_id == current.id and changes.get("is_active") is False:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account.",
        )
    employee = services.update_employee(db, employee_id=employee_id, changes=changes)
    db.commit()
    db.refresh(employee)
    return employee


@router.post("/employees/{employee_id}/deactivate", response_model=schemas.EmployeeRead)
def deactivate_employee(
    employee_id: str,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    if employee_id == current.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account.",
        )
    employee = services.set_employee_active(db, employee_id=employee_id, is_active=False)
    db.commit()
    db.refresh(employee)
    return employee


@router.delete("/employees/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    employee_id: str,
    db: Session = Depends(get_write_db),
    current: models.Employee = Depends(require_admin),
):
    services.delete_employee(db, employee_id=employee_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
