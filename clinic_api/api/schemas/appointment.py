from pydantic import BaseModel, EmailStr


class AppointmentRequest(BaseModel):
    nombre: str
    telefono: str
    email: EmailStr
    fecha: str  # YYYY-MM-DD
    hora: str  # HH:MM
    motivo: str | None = None
    lead_id: str | None = None


class AppointmentResponse(BaseModel):
    success: bool = True
    message: str
    event_id: str | None = None
