from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from uni_health.models.calendar import HolidayType


class HolidayBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: date
    end_date: date
    type: HolidayType = HolidayType.holiday
    affects_staff_type: str = "all"
    affected_departments: list[str] = Field(default_factory=list)
    blocks_appointments: bool = True
    is_active: bool = True


class HolidayIn(HolidayBase):
    pass


class HolidayUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[HolidayType] = None
    affects_staff_type: Optional[str] = None
    affected_departments: Optional[list[str]] = None
    blocks_appointments: Optional[bool] = None
    is_active: Optional[bool] = None


class HolidayOut(HolidayBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
