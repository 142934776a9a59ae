from datetime import date

import httpx
from fastapi import APIRouter, Depends, Query

from clinic_api.api.deps import get_http_client, get_settings
from clinic_api.api.schemas.availability import (
    AvailabilityResponse,
    BusySlotInfo,
    SlotInfo,
    WorkingHoursOut,
)
from clinic_api.core.config import Settings
from clinic_api.core.errors import ValidationError
from clinic_api.services.availability_service import WorkingHours, get_availability
from clinic_api.services.crm_client import FrappeClient

router = APIRouter(tags=["availability"])


@router.get("/availability", response_model=AvailabilityResponse)
async def availability(
    date_param: str | None = Query(None, alias="date"),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> AvailabilityResponse:
    """Slot grid for one day; slots overlapping a CRM event are marked unavailable."""
    if not date_param:
        raise ValidationError("Date parameter is required (YYYY-MM-DD)")
    try:
        day = date.fromisoformat(date_param)
    except ValueError as e:
        raise ValidationError("Date parameter must be YYYY-MM-DD") from e
    crm = FrappeClient.from_settings(http, settings)
    hours = WorkingHours.from_settings(settings)
    slots, busy = await get_availability(crm, day, hours)
    return AvailabilityResponse(
        date=day.isoformat(),
        working_hours=WorkingHoursOut(
            start=hours.start,
            end=hours.end,
            slot_duration=hours.slot_duration,
            break_start=hours.break_start,
            break_end=hours.break_end,
        ),
        slots=[SlotInfo(time=s.time, available=s.available) for s in slots],
        busy_slots=[BusySlotInfo(start=b.start, end=b.end, subject=b.subject) for b in busy],
    )
