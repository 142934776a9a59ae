import logging

import httpx
from fastapi import APIRouter, Depends, Query, Request

from clinic_api.api.deps import get_http_client, get_settings
from clinic_api.api.schemas.payment import (
    FreeAppointmentResponse,
    PaymentPreferenceRequest,
    PaymentPreferenceResponse,
)
from clinic_api.core.config import Settings
from clinic_api.core.errors import AppError, ConfigurationError, ValidationError
from clinic_api.services.crm_client import FrappeClient
from clinic_api.services.payment_gateway import MercadoPagoClient
from clinic_api.services.payment_service import (
    APPROVED,
    build_preference,
    generate_external_reference,
    is_free,
    record_paid_appointment,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])


@router.post("/payment", response_model=PaymentPreferenceResponse | FreeAppointmentResponse)
async def create_payment(
    body: PaymentPreferenceRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> PaymentPreferenceResponse | FreeAppointmentResponse:
    if is_free(body.precio):
        return FreeAppointmentResponse()
    gateway = MercadoPagoClient.from_settings(http, settings)
    external_reference = generate_external_reference()
    preference = build_preference(
        nombre=body.nombre,
        email=body.email,
        telefono=body.telefono,
        servicio=body.servicio,
        precio=body.precio,
        fecha=body.fecha,
        hora=body.hora,
        duracion=body.duracion,
        motivo=body.motivo,
        external_reference=external_reference,
        settings=settings,
    )
    logger.info("Creating MercadoPago preference %s for %s", external_reference, body.servicio)
    result = await gateway.create_preference(preference)
    return PaymentPreferenceResponse(
        payment_url=result.get("init_point"),
        sandbox_url=result.get("sandbox_init_point"),
        preference_id=result.get("id"),
        external_reference=external_reference,
    )


async def _webhook_payload(request: Request) -> tuple[str | None, str | None]:
    """Notification type and payment id, from the JSON body or the query string."""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    notification_type = body.get("type") or request.query_params.get("type") or request.query_params.get("topic")
    payment_id = data.get("id") or request.query_params.get("data.id") or request.query_params.get("id")
    return notification_type, (str(payment_id) if payment_id else None)


@router.get("/payment-webhook")
async def payment_webhook_ping() -> dict:
    return {"received": True}


@router.post("/payment-webhook")
async def payment_webhook(
    request: Request,
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Always answers 200 so the gateway does not retry; failures are only logged."""
    notification_type, payment_id = await _webhook_payload(request)
    logger.info("Webhook received: type=%s payment_id=%s", notification_type, payment_id)
    if notification_type != "payment":
        return {"received": True, "ignored": True}
    if not payment_id:
        return {"received": True, "no_payment_id": True}
    try:
        gateway = MercadoPagoClient.from_settings(http, settings)
        payment = await gateway.get_payment(payment_id)
        status = payment.get("status")
        logger.info("Payment %s status: %s", payment_id, status)
        if status != APPROVED:
            return {"received": True, "status": status}
        crm = FrappeClient.from_settings(http, settings)
        record = await record_paid_appointment(crm, payment, payment_id)
    except AppError as e:
        logger.error("Webhook processing failed for payment %s: %s", payment_id, e.message)
        return {"received": True, "processed": False, "error": e.message}
    except Exception as e:
        logger.exception("Webhook processing error for payment %s: %s", payment_id, e)
        return {"received": True, "processed": False, "error": "Webhook processing error"}
    return {"received": True, "processed": True, "event_id": record.event_id}


@router.get("/verify-payment")
async def verify_payment(
    payment_id: str | None = Query(None),
    status: str | None = Query(None),
    external_reference: str | None = Query(None),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Called when the patient lands back on the success page."""
    logger.info("Verifying payment: id=%s status=%s ref=%s", payment_id, status, external_reference)
    if not payment_id:
        raise ValidationError("Missing payment_id")
    gateway = MercadoPagoClient.from_settings(http, settings)
    if not settings.crm_configured:
        raise ConfigurationError("CRM configuration error")
    payment = await gateway.get_payment(payment_id)
    if payment.get("status") != APPROVED:
        return {"success": False, "status": payment.get("status"), "message": "Pago no aprobado"}
    crm = FrappeClient.from_settings(http, settings)
    record = await record_paid_appointment(crm, payment, payment_id, external_reference)
    return {
        "success": True,
        "payment_status": payment.get("status"),
        "amount": payment.get("transaction_amount"),
        "event_id": record.event_id,
        "lead_id": record.lead_id,
        "appointment": record.appointment.summary(),
    }
