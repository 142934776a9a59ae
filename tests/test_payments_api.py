"""Test /api/payment, /api/payment-webhook and /api/verify-payment."""
import re
from datetime import datetime

import pytest

from clinic_api.services.payment_service import (
    PaidAppointment,
    format_clp,
    generate_external_reference,
)

PAYMENT_REQUEST = {
    "nombre": "Ana María Pérez",
    "email": "ana.perez@gmail.com",
    "telefono": "+56 9 1234-5678",
    "servicio": "Evaluación presencial",
    "precio": 35000,
    "fecha": "2025-03-10",
    "hora": "10:30",
    "duracion": 60,
    "motivo": "Control",
}

APPROVED_PAYMENT = {
    "id": 123456,
    "status": "approved",
    "transaction_amount": 35000,
    "external_reference": "CITA-1-abc",
    "metadata": {
        "nombre": "Ana María Pérez",
        "email": "ana.perez@gmail.com",
        "telefono": "+56912345678",
        "servicio": "Evaluación presencial",
        "fecha": "2025-03-10",
        "hora": "10:30",
        "duracion": 60,
        "motivo": "Control",
    },
}


@pytest.fixture
def crm(upstream):
    upstream.add("POST", "/api/resource/Event", json_body={"data": {"name": "EV-9"}})
    upstream.add("POST", "/api/resource/CRM Lead", json_body={"data": {"name": "CRM-LEAD-9"}})
    return upstream


def test_external_reference_format():
    ref = generate_external_reference(now_ms=1700000000000)
    assert re.fullmatch(r"CITA-1700000000000-[0-9a-z]{9}", ref)
    assert re.fullmatch(r"CITA-\d{13}-[0-9a-z]{9}", generate_external_reference())


def test_format_clp():
    assert format_clp(35000) == "35.000"
    assert format_clp(1250000.0) == "1.250.000"
    assert format_clp(None) == "0"


def test_paid_appointment_falls_back_to_tomorrow_at_ten():
    appt = PaidAppointment.from_payment({"metadata": {}, "payer": {"first_name": "Ana", "email": "a@b.cl"}})
    start, end = appt.window(now=datetime(2025, 3, 10, 18, 45))
    assert start == datetime(2025, 3, 11, 10, 0)
    assert end == datetime(2025, 3, 11, 10, 30)
    assert appt.nombre == "Ana"
    assert appt.email == "a@b.cl"
    assert appt.servicio == "Consulta"


def test_create_preference(client, upstream):
    upstream.add(
        "POST",
        "/checkout/preferences",
        json_body={"id": "pref-1", "init_point": "https://mp/pay", "sandbox_init_point": "https://mp/sandbox"},
    )

    response = client.post("/api/payment", json=PAYMENT_REQUEST)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["payment_url"] == "https://mp/pay"
    assert data["sandbox_url"] == "https://mp/sandbox"
    assert data["preference_id"] == "pref-1"
    assert re.fullmatch(r"CITA-\d+-[0-9a-z]{9}", data["external_reference"])

    (request,) = upstream.calls("POST", "/checkout/preferences")
    assert request.headers["Authorization"] == "Bearer TEST-token"
    preference = upstream.body(request)
    assert preference["external_reference"] == data["external_reference"]
    assert preference["items"][0]["unit_price"] == 35000
    assert preference["items"][0]["currency_id"] == "CLP"
    assert preference["payer"]["name"] == "Ana"
    assert preference["payer"]["surname"] == "María Pérez"
    assert preference["payer"]["phone"]["number"] == "56912345678"
    assert preference["notification_url"] == "https://clinic.test/api/payment-webhook"
    assert preference["back_urls"]["success"].startswith("https://clinic.test/pago-exitoso.html?ref=CITA-")
    assert preference["metadata"]["hora"] == "10:30"


@pytest.mark.parametrize("precio", [0, None])
def test_free_appointment_skips_gateway(client, upstream, precio):
    payload = {**PAYMENT_REQUEST, "precio": precio}

    response = client.post("/api/payment", json=payload)

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["free"] is True
    assert upstream.requests == []


def test_preference_gateway_error_is_relayed(client, upstream):
    upstream.add("POST", "/checkout/preferences", status_code=400, json_body={"message": "invalid payer"})

    response = client.post("/api/payment", json=PAYMENT_REQUEST)

    assert response.status_code == 400
    assert response.json() == {"error": "Error creating payment", "details": {"message": "invalid payer"}}


def test_preference_without_token_is_500(client, upstream, test_settings):
    test_settings.mercadopago_access_token = ""

    response = client.post("/api/payment", json=PAYMENT_REQUEST)

    assert response.status_code == 500
    assert response.json() == {"error": "Payment configuration error"}
    assert upstream.requests == []


def test_webhook_ignores_non_payment_events(client, upstream):
    response = client.post("/api/payment-webhook", json={"type": "merchant_order", "data": {"id": "1"}})

    assert response.status_code == 200
    assert response.json() == {"received": True, "ignored": True}
    assert upstream.requests == []


def test_webhook_without_payment_id(client, upstream):
    response = client.post("/api/payment-webhook", json={"type": "payment", "data": {}})

    assert response.json() == {"received": True, "no_payment_id": True}
    assert upstream.requests == []


def test_webhook_get_is_acknowledged(client):
    response = client.get("/api/payment-webhook")

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_approved_payment_creates_event_and_lead(client, crm):
    crm.add("GET", "/v1/payments/123456", json_body=APPROVED_PAYMENT)

    response = client.post("/api/payment-webhook", json={"type": "payment", "data": {"id": "123456"}})

    assert response.status_code == 200
    assert response.json() == {"received": True, "processed": True, "event_id": "EV-9"}
    event = crm.body(crm.calls("POST", "/api/resource/Event")[0])
    assert event["starts_on"] == "2025-03-10 10:30:00"
    assert event["ends_on"] == "2025-03-10 11:30:00"
    assert "35.000" in event["description"]
    assert event["subject"].endswith("Ana María Pérez - Evaluación presencial")
    lead = crm.body(crm.calls("POST", "/api/resource/CRM Lead")[0])
    assert lead["status"] == "New"
    assert "ID Pago: 123456" in lead["notes"]


def test_webhook_reads_query_string_notifications(client, crm):
    crm.add("GET", "/v1/payments/77", json_body={**APPROVED_PAYMENT, "id": 77})

    response = client.post("/api/payment-webhook?type=payment&data.id=77")

    assert response.json()["processed"] is True


def test_webhook_pending_payment_is_not_recorded(client, upstream):
    upstream.add("GET", "/v1/payments/5", json_body={"id": 5, "status": "pending"})

    response = client.post("/api/payment-webhook", json={"type": "payment", "data": {"id": 5}})

    assert response.json() == {"received": True, "status": "pending"}
    assert upstream.calls("POST", "/api/resource/Event") == []


def test_webhook_never_fails_on_upstream_errors(client, upstream):
    upstream.add("GET", "/v1/payments/5", status_code=500, json_body={"message": "down"})

    response = client.post("/api/payment-webhook", json={"type": "payment", "data": {"id": "5"}})

    assert response.status_code == 200
    assert response.json()["received"] is True
    assert response.json()["processed"] is False


def test_webhook_lead_failure_still_processed(client, crm):
    crm.add("GET", "/v1/payments/123456", json_body=APPROVED_PAYMENT)
    crm.add("POST", "/api/resource/CRM Lead", status_code=500, json_body={"exc": "boom"})

    response = client.post("/api/payment-webhook", json={"type": "payment", "data": {"id": "123456"}})

    assert response.json() == {"received": True, "processed": True, "event_id": "EV-9"}


def test_verify_payment_approved(client, crm):
    crm.add("GET", "/v1/payments/123456", json_body=APPROVED_PAYMENT)

    response = client.get(
        "/api/verify-payment",
        params={"payment_id": "123456", "status": "approved", "external_reference": "CITA-1-abc"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "payment_status": "approved",
        "amount": 35000,
        "event_id": "EV-9",
        "lead_id": "CRM-LEAD-9",
        "appointment": {
            "nombre": "Ana María Pérez",
            "fecha": "2025-03-10",
            "hora": "10:30",
            "servicio": "Evaluación presencial",
        },
    }
    event = crm.body(crm.calls("POST", "/api/resource/Event")[0])
    assert "CITA-1-abc" in event["description"]


def test_verify_payment_not_approved(client, upstream):
    upstream.add("GET", "/v1/payments/9", json_body={"id": 9, "status": "rejected"})

    response = client.get("/api/verify-payment", params={"payment_id": "9"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "status": "rejected", "message": "Pago no aprobado"}


def test_verify_payment_requires_id(client, upstream):
    response = client.get("/api/verify-payment")

    assert response.status_code == 400
    assert response.json() == {"error": "Missing payment_id"}
    assert upstream.requests == []


def test_verify_payment_without_crm_credentials(client, upstream, test_settings):
    test_settings.frappe_api_secret = ""

    response = client.get("/api/verify-payment", params={"payment_id": "9"})

    assert response.status_code == 500
    assert response.json() == {"error": "CRM configuration error"}
    assert upstream.requests == []
