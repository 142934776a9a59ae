from dataclasses import dataclass
from datetime import date, datetime, timedelta

from clinic_api.core.config import Settings
from clinic_api.services.crm_client import FrappeClient

DEFAULT_EVENT_MINUTES = 30
EVENT_FIELDS = ["name", "subject", "starts_on", "ends_on", "status"]


@dataclass(frozen=True)
class WorkingHours:
    start: str = "09:00"
    end: str = "18:00"
    slot_duration: int = 30
    break_start: str = "13:00"
    break_end: str = "14:00"

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkingHours":
        return cls(
            start=settings.work_start,
            end=settings.work_end,
            slot_duration=settings.slot_duration_minutes,
            break_start=settings.break_start,
            break_end=settings.break_end,
        )


@dataclass(frozen=True)
class BusyInterval:
    start: str  # HH:MM, inclusive
    end: str  # HH:MM, exclusive
    subject: str | None = None


@dataclass(frozen=True)
class AvailabilitySlot:
    time: str
    available: bool


def _at(d: date, hhmm: str) -> datetime:
    hour, minute = hhmm.split(":")
    return datetime(d.year, d.month, d.day, int(hour), int(minute))


def _slot_times_for_date(d: date, hours: WorkingHours) -> list[datetime]:
    slots: list[datetime] = []
    current = _at(d, hours.start)
    end = _at(d, hours.end)
    delta = timedelta(minutes=hours.slot_duration)
    while current < end:
        slots.append(current)
        current += delta
    return slots


def is_busy(time_str: str, busy: list[BusyInterval]) -> bool:
    # Zero-padded HH:MM strings order the same as the times they encode
    return any(b.start <= time_str < b.end for b in busy)


def compute_slots(d: date, busy: list[BusyInterval], hours: WorkingHours) -> list[AvailabilitySlot]:
    """Slot grid for one day. Times inside the break window are left out entirely."""
    if hours.slot_duration <= 0:
        raise ValueError("slot_duration must be positive")
    out: list[AvailabilitySlot] = []
    for s in _slot_times_for_date(d, hours):
        time_str = s.strftime("%H:%M")
        if hours.break_start <= time_str < hours.break_end:
            continue
        out.append(AvailabilitySlot(time=time_str, available=not is_busy(time_str, busy)))
    return out


def _parse_crm_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.strip().replace("T", " "))


def busy_intervals_from_events(events: list[dict]) -> list[BusyInterval]:
    intervals: list[BusyInterval] = []
    for event in events:
        starts_on = event.get("starts_on")
        if not starts_on:
            continue
        start = _parse_crm_datetime(starts_on)
        ends_on = event.get("ends_on")
        end = _parse_crm_datetime(ends_on) if ends_on else start + timedelta(minutes=DEFAULT_EVENT_MINUTES)
        intervals.append(
            BusyInterval(
                start=start.strftime("%H:%M"),
                end=end.strftime("%H:%M"),
                subject=event.get("subject"),
            )
        )
    return intervals


def day_event_filters(d: date) -> list[list[str]]:
    """Events starting on the given day that are not cancelled."""
    day = d.isoformat()
    return [
        ["starts_on", ">=", f"{day} 00:00:00"],
        ["starts_on", "<=", f"{day} 23:59:59"],
        ["status", "!=", "Cancelled"],
    ]


async def get_availability(
    crm: FrappeClient, d: date, hours: WorkingHours
) -> tuple[list[AvailabilitySlot], list[BusyInterval]]:
    events = await crm.list_events(day_event_filters(d), EVENT_FIELDS)
    busy = busy_intervals_from_events(events)
    return compute_slots(d, busy, hours), busy
