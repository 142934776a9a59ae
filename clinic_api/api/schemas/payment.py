from pydantic import BaseModel, EmailStr


class PaymentPreferenceRequest(BaseModel):
    nombre: str
    email: EmailStr
    telefono: str
    servicio: str
    precio: int | float | None = None
    fecha: str
    hora: str
    duracion: int | None = 30
    motivo: str | None = None


class PaymentPreferenceResponse(BaseModel):
    success: bool = True
    payment_url: str | None = None
    sandbox_url: str | None = None
    preference_id: str | None = None
    external_reference: str


class FreeAppointmentResponse(BaseModel):
    success: bool = True
    free: bool = True
    message: str = "Cita gratuita, no requiere pago"
