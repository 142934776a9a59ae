from pydantic import BaseModel, ConfigDict, Field


class WorkingHoursOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: str
    end: str
    slot_duration: int = Field(alias="slotDuration")
    break_start: str = Field(alias="breakStart")
    break_end: str = Field(alias="breakEnd")


class SlotInfo(BaseModel):
    time: str  # HH:MM
    available: bool


class BusySlotInfo(BaseModel):
    start: str
    end: str
    subject: str | None = None


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    date: str  # YYYY-MM-DD
    working_hours: WorkingHoursOut = Field(alias="workingHours")
    slots: list[SlotInfo]
    busy_slots: list[BusySlotInfo] = Field(alias="busySlots")
