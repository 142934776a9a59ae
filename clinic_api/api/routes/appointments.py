import httpx
from fastapi import APIRouter, Depends

from clinic_api.api.deps import get_http_client, get_settings
from clinic_api.api.schemas.appointment import AppointmentRequest, AppointmentResponse
from clinic_api.core.config import Settings
from clinic_api.services.appointment_service import build_appointment_event, create_appointment
from clinic_api.services.crm_client import FrappeClient

router = APIRouter(tags=["appointments"])


@router.post("/appointment", response_model=AppointmentResponse)
async def book_appointment(
    body: AppointmentRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> AppointmentResponse:
    crm = FrappeClient.from_settings(http, settings)
    event = build_appointment_event(
        nombre=body.nombre,
        telefono=body.telefono,
        email=body.email,
        fecha=body.fecha,
        hora=body.hora,
        motivo=body.motivo,
        lead_id=body.lead_id,
        duration_minutes=settings.appointment_duration_minutes,
    )
    event_id = await create_appointment(crm, event)
    return AppointmentResponse(message="Cita agendada correctamente", event_id=event_id)
