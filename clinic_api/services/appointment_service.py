import logging
from datetime import date, datetime, time, timedelta

from clinic_api.core.errors import ValidationError
from clinic_api.services.crm_client import LEAD_DOCTYPE, FrappeClient

logger = logging.getLogger(__name__)

CRM_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_crm_datetime(dt: datetime) -> str:
    return dt.strftime(CRM_DATETIME_FORMAT)


def parse_start(fecha: str, hora: str) -> datetime:
    """Combine YYYY-MM-DD and HH:MM[:SS] into a naive local datetime."""
    try:
        d = date.fromisoformat(fecha.strip())
        t = time.fromisoformat(hora.strip())
    except (AttributeError, ValueError) as e:
        raise ValidationError("Fecha u hora inválida (YYYY-MM-DD, HH:MM)") from e
    return datetime.combine(d, t)


def appointment_window(fecha: str, hora: str, duration_minutes: int = 30) -> tuple[datetime, datetime]:
    start = parse_start(fecha, hora)
    return start, start + timedelta(minutes=duration_minutes)


def build_appointment_event(
    nombre: str,
    telefono: str,
    email: str,
    fecha: str,
    hora: str,
    motivo: str | None = None,
    lead_id: str | None = None,
    duration_minutes: int = 30,
) -> dict:
    start, end = appointment_window(fecha, hora, duration_minutes)
    description = (
        f"<b>Paciente:</b> {nombre}<br>"
        f"<b>Teléfono:</b> {telefono}<br>"
        f"<b>Email:</b> {email}<br>"
        f"<b>Motivo:</b> {motivo or 'Consulta general'}<br>"
        "<br>"
        "<i>Cita agendada desde el sitio web</i>"
    )
    event = {
        "doctype": "Event",
        "subject": f"Cita: {nombre}",
        "starts_on": format_crm_datetime(start),
        "ends_on": format_crm_datetime(end),
        "event_type": "Public",
        "status": "Open",
        "description": description,
    }
    if lead_id:
        event["reference_doctype"] = LEAD_DOCTYPE
        event["reference_docname"] = lead_id
    return event


async def create_appointment(crm: FrappeClient, event: dict) -> str | None:
    """Create the Event in the CRM; returns the new event name."""
    logger.info("Creating Event %r starting %s", event.get("subject"), event.get("starts_on"))
    data = await crm.create_event(event)
    return data.get("name")
