from datetime import datetime, time
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class ClinicHour(BaseModel):
    day: Weekday
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    is_closed: bool = False

    @model_validator(mode="after")
    def check_times(self):
        if self.is_closed:
            self.open_time = None
            self.close_time = None
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("Open days require open_time and close_time")
        if self.close_time <= self.open_time:
            raise ValueError("close_time must be after open_time")
        return self


class AppointmentTip(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1, max_length=1000)
    order: int = 0


class EmergencyContact(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=1, max_length=50)
    order: int = 0


class ClinicSettingsIn(BaseModel):
    clinic_hours: list[ClinicHour] = Field(min_length=1, max_length=7)
    appointment_tips: list[AppointmentTip]
    emergency_contacts: list[EmergencyContact]

    @model_validator(mode="after")
    def one_entry_per_day(self):
        days = [entry.day for entry in self.clinic_hours]
        if len(days) != len(set(days)):
            raise ValueError("Each day may appear only once in clinic_hours")
        return self


class ClinicSettingsOut(ClinicSettingsIn):
    is_default: bool = False
    updated_at: Optional[datetime] = None
