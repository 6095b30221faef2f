# backend/certdb/apps/personnel/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models import EmployeeStatus


class DepartmentBase(BaseModel):
    code: str = Field(..., description="Short code, e.g. 'OPS'")
    name: str


class DepartmentCreate(DepartmentBase):
    pass


class DepartmentRead(DepartmentBase):
    id: int
    is_active: bool

    class Config:
        from_attributes = True


class EmployeeBase(BaseModel):
    employee_id: str = Field(..., description="Staff number (NIP).")
    name: str
    email: Optional[str] = None
    position: Optional[str] = None
    department_id: Optional[int] = None


class EmployeeCreate(EmployeeBase):
    status: EmployeeStatus = EmployeeStatus.ACTIVE


class EmployeeUpdate(BaseModel):
    employee_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    position: Optional[str] = None
    department_id: Optional[int] = None
    status: Optional[EmployeeStatus] = None


class EmployeeRead(EmployeeBase):
    id: int
    status: EmployeeStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
