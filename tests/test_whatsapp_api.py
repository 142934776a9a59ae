"""Test the /api/whatsapp-verify proxy."""
import re

import pytest

from clinic_api.services.whatsapp_gateway import chat_id_for, normalize_phone

URL = "/api/whatsapp-verify"


@pytest.fixture
def gateway(upstream):
    upstream.add("GET", "/api/sessions/default", json_body={"name": "default", "status": "WORKING"})
    upstream.add("POST", "/api/sendText", json_body={"id": "msg-1"})
    return upstream


def _sent_code(gateway) -> str:
    text = gateway.body(gateway.calls("POST", "/api/sendText")[-1])["text"]
    return re.search(r"\*(\d{6})\*", text).group(1)


@pytest.mark.parametrize(
    "phone,expected",
    [
        ("+56 9 1234 5678", "56912345678"),
        ("912345678", "56912345678"),
        ("(56) 9-1234-5678", "56912345678"),
        ("+1 415 555 0100", "14155550100"),
        ("", ""),
    ],
)
def test_normalize_phone(phone, expected):
    assert normalize_phone(phone) == expected


def test_chat_id_for():
    assert chat_id_for("9 1234 5678") == "56912345678@c.us"


def test_send_code_delivers_message(client, gateway, manager):
    response = client.post(URL, params={"action": "send-code"}, json={"phone": "+56 9 1234 5678", "nombre": "Ana"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Código enviado por WhatsApp", "expiresIn": 600}
    sent = gateway.body(gateway.calls("POST", "/api/sendText")[0])
    assert sent["chatId"] == "56912345678@c.us"
    assert sent["session"] == "default"
    assert "Hola Ana!" in sent["text"]
    assert gateway.calls("POST", "/api/sendText")[0].headers["X-Api-Key"] == "wa-key"
    assert manager.pending_count() == 1


def test_send_then_verify(client, gateway):
    client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})
    code = _sent_code(gateway)

    response = client.post(URL, params={"action": "verify-code"}, json={"phone": "+56 9 1234 5678", "code": code})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Número verificado correctamente"}

    again = client.post(URL, params={"action": "verify-code"}, json={"phone": "912345678", "code": code})
    assert again.status_code == 400
    assert again.json()["reason"] == "no_pending_code"


def test_wrong_code_reports_remaining_attempts(client, gateway):
    client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})
    wrong = "000000" if _sent_code(gateway) != "000000" else "111111"

    response = client.post(URL, params={"action": "verify-code"}, json={"phone": "912345678", "code": wrong})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["reason"] == "code_mismatch"
    assert body["remaining_attempts"] == 2
    assert "Intentos restantes: 2" in body["error"]


def test_lockout_after_three_wrong_codes(client, gateway):
    client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})
    code = _sent_code(gateway)
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(3):
        client.post(URL, params={"action": "verify-code"}, json={"phone": "912345678", "code": wrong})

    response = client.post(URL, params={"action": "verify-code"}, json={"phone": "912345678", "code": code})

    assert response.status_code == 400
    assert response.json()["reason"] == "no_pending_code"


def test_send_code_requires_phone(client, gateway):
    response = client.post(URL, params={"action": "send-code"}, json={})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert gateway.requests == []


def test_verify_code_requires_code(client, gateway):
    response = client.post(URL, params={"action": "verify-code"}, json={"phone": "912345678"})

    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_input"


def test_send_code_when_session_disconnected(client, upstream, manager):
    upstream.add("GET", "/api/sessions/default", json_body={"name": "default", "status": "SCAN_QR_CODE"})

    response = client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})

    assert response.status_code == 503
    assert response.json()["success"] is False
    assert manager.pending_count() == 0


def test_failed_delivery_discards_code(client, gateway, manager):
    gateway.add("POST", "/api/sendText", status_code=500, json_body={"error": "not on whatsapp"})

    response = client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Error al enviar el mensaje. Verifica el número."}
    assert manager.pending_count() == 0


def test_send_code_without_gateway_config(client, upstream, test_settings):
    test_settings.whatsapp_service_url = ""

    response = client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "WHATSAPP_SERVICE_URL" in response.json()["error"]


def test_status_relays_session(client, gateway):
    response = client.get(URL, params={"action": "status"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "WORKING", "name": "default"}


def test_status_when_gateway_down(client, upstream):
    upstream.add("GET", "/api/sessions/default", status_code=502, json_body={"error": "bad gateway"})

    response = client.get(URL, params={"action": "status"})

    assert response.status_code == 503
    assert response.json()["success"] is False
    assert response.json()["status"] == "disconnected"


def test_invalid_action(client):
    response = client.get(URL, params={"action": "reboot"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid action. Use: send-code, verify-code, or status"}


def test_send_code_over_get_is_405(client):
    response = client.get(URL, params={"action": "send-code"})

    assert response.status_code == 405


def test_verify_accepts_numeric_code(client, gateway):
    client.post(URL, params={"action": "send-code"}, json={"phone": "912345678"})
    code = int(_sent_code(gateway))

    response = client.post(URL, params={"action": "verify-code"}, json={"phone": 912345678, "code": code})

    assert response.status_code == 200
    assert response.json()["success"] is True
