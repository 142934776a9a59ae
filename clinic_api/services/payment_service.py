import logging
import random
import re
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from clinic_api.core.best_effort import BestEffortResult, run_best_effort
from clinic_api.core.config import Settings
from clinic_api.core.errors import ValidationError
from clinic_api.services.appointment_service import format_crm_datetime, parse_start
from clinic_api.services.crm_client import LEAD_DOCTYPE, FrappeClient
from clinic_api.services.lead_service import split_name

logger = logging.getLogger(__name__)

APPROVED = "approved"
_BASE36 = string.digits + string.ascii_lowercase
_NON_DIGITS = re.compile(r"\D")


def generate_external_reference(now_ms: int | None = None) -> str:
    """CITA-<epoch millis>-<9 base36 chars>."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"CITA-{now_ms}-{suffix}"


def is_free(precio: float | None) -> bool:
    return not precio


def format_clp(amount: float | int | None) -> str:
    """Thousands separated with dots, as es-CL prints whole pesos."""
    if amount is None:
        return "0"
    return f"{round(amount):,}".replace(",", ".")


def build_preference(
    *,
    nombre: str,
    email: str,
    telefono: str,
    servicio: str,
    precio: float,
    fecha: str,
    hora: str,
    duracion: int | None,
    motivo: str | None,
    external_reference: str,
    settings: Settings,
) -> dict:
    first_name, last_name = split_name(nombre)
    site = settings.site_url.rstrip("/")
    return {
        "items": [
            {
                "id": external_reference,
                "title": f"Cita: {servicio}",
                "description": f"Cita con Dra. Nikkita - {fecha} a las {hora}",
                "quantity": 1,
                "currency_id": settings.currency_id,
                "unit_price": precio,
            }
        ],
        "payer": {
            "name": first_name,
            "surname": last_name,
            "email": email,
            "phone": {"number": _NON_DIGITS.sub("", telefono or "")},
        },
        "back_urls": {
            "success": f"{site}/pago-exitoso.html?ref={external_reference}",
            "failure": f"{site}/pago-fallido.html?ref={external_reference}",
            "pending": f"{site}/pago-pendiente.html?ref={external_reference}",
        },
        "auto_return": "approved",
        "external_reference": external_reference,
        "notification_url": f"{site}/api/payment-webhook",
        "statement_descriptor": settings.statement_descriptor,
        "metadata": {
            "nombre": nombre,
            "email": email,
            "telefono": telefono,
            "servicio": servicio,
            "fecha": fecha,
            "hora": hora,
            "duracion": duracion,
            "motivo": motivo or "",
        },
    }


@dataclass
class PaidAppointment:
    """Appointment data carried in a payment's metadata, with fallbacks applied."""

    nombre: str
    email: str
    telefono: str
    servicio: str
    fecha: str | None
    hora: str | None
    duracion: int
    motivo: str

    @classmethod
    def from_payment(cls, payment: dict) -> "PaidAppointment":
        metadata = payment.get("metadata") or {}
        payer = payment.get("payer") or {}
        try:
            duracion = int(metadata.get("duracion") or 30)
        except (TypeError, ValueError):
            duracion = 30
        return cls(
            nombre=metadata.get("nombre") or payer.get("first_name") or "Sin nombre",
            email=metadata.get("email") or payer.get("email") or "",
            telefono=metadata.get("telefono") or "",
            servicio=metadata.get("servicio") or "Consulta",
            fecha=metadata.get("fecha"),
            hora=metadata.get("hora"),
            duracion=duracion,
            motivo=metadata.get("motivo") or "",
        )

    def window(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Start/end from metadata; tomorrow at 10:00 for 30 minutes when date or time is missing."""
        if self.fecha and self.hora:
            try:
                start = parse_start(self.fecha, self.hora)
                return start, start + timedelta(minutes=self.duracion)
            except ValidationError:
                logger.warning("Unparseable appointment date in metadata: %s %s", self.fecha, self.hora)
        now = now or datetime.now()
        start = (now + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
        return start, start + timedelta(minutes=30)

    def summary(self) -> dict:
        return {
            "nombre": self.nombre,
            "fecha": self.fecha,
            "hora": self.hora,
            "servicio": self.servicio,
        }


def build_paid_event(
    appt: PaidAppointment, payment: dict, payment_id: str, external_reference: str | None
) -> dict:
    start, end = appt.window()
    amount = format_clp(payment.get("transaction_amount"))
    reference = external_reference or payment.get("external_reference") or ""
    description = (
        f"<b>👤 Paciente:</b> {appt.nombre}<br>"
        f"<b>📱 Teléfono:</b> {appt.telefono}<br>"
        f"<b>📧 Email:</b> {appt.email}<br>"
        f"<b>🏥 Servicio:</b> {appt.servicio}<br>"
        f"<b>💰 Monto pagado:</b> ${amount} CLP<br>"
        f"<b>📝 Motivo:</b> {appt.motivo or 'No especificado'}<br>"
        "<br>"
        f"<b>🔖 ID de pago:</b> {payment_id}<br>"
        f"<b>📅 Referencia:</b> {reference}<br>"
        "<br>"
        '<i style="color: green;">✓ Pago confirmado vía MercadoPago</i>'
    )
    return {
        "doctype": "Event",
        "subject": f"✅ Cita PAGADA: {appt.nombre} - {appt.servicio}",
        "starts_on": format_crm_datetime(start),
        "ends_on": format_crm_datetime(end),
        "event_type": "Public",
        "status": "Open",
        "description": description,
    }


def build_paid_lead(appt: PaidAppointment, payment: dict, payment_id: str) -> dict:
    first_name, last_name = split_name(appt.nombre)
    amount = format_clp(payment.get("transaction_amount"))
    return {
        "doctype": LEAD_DOCTYPE,
        "first_name": first_name or "Sin nombre",
        "last_name": last_name,
        "email": appt.email,
        "mobile_no": appt.telefono,
        "status": "New",
        "notes": (
            f"Cita pagada: {appt.servicio} - {appt.fecha} {appt.hora}\n"
            f"Monto: ${amount} CLP\n"
            f"ID Pago: {payment_id}"
        ),
    }


@dataclass
class PaidAppointmentRecord:
    event: BestEffortResult
    lead: BestEffortResult
    appointment: PaidAppointment

    @property
    def event_id(self) -> str | None:
        return (self.event.value or {}).get("name") if self.event.ok else None

    @property
    def lead_id(self) -> str | None:
        return (self.lead.value or {}).get("name") if self.lead.ok else None


async def record_paid_appointment(
    crm: FrappeClient, payment: dict, payment_id: str, external_reference: str | None = None
) -> PaidAppointmentRecord:
    """Create the CRM Event and Lead for an approved payment. The payment stands even if these fail."""
    appt = PaidAppointment.from_payment(payment)
    event = build_paid_event(appt, payment, payment_id, external_reference)
    event_result = await run_best_effort("event", crm.create_event(event))
    if event_result.ok:
        logger.info("Event created for payment %s: %s", payment_id, (event_result.value or {}).get("name"))
    lead_result = await run_best_effort("lead", crm.create_lead(build_paid_lead(appt, payment, payment_id)))
    if lead_result.ok:
        logger.info("Lead created for paid appointment %s", payment_id)
    return PaidAppointmentRecord(event=event_result, lead=lead_result, appointment=appt)
