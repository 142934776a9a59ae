import logging
import re

import httpx

from clinic_api.core.config import Settings
from clinic_api.core.errors import ConfigurationError
from clinic_api.services.upstream import send

logger = logging.getLogger(__name__)

CONNECTED_STATUS = "WORKING"
_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Digits only; bare 9-digit Chilean mobiles get the 56 country code."""
    cleaned = _NON_DIGITS.sub("", phone or "")
    if cleaned.startswith("9") and len(cleaned) == 9:
        return "56" + cleaned
    return cleaned


def chat_id_for(phone: str) -> str:
    return normalize_phone(phone) + "@c.us"


def verification_message(code: str, ttl_minutes: int, nombre: str | None = None) -> str:
    greeting = f"Hola {nombre}! 👋" if nombre else "Hola! 👋"
    return (
        "🏥 *Dra. Nikkita - Verificación*\n\n"
        f"{greeting}\n\n"
        "Tu código de verificación es:\n\n"
        f"*{code}*\n\n"
        f"Este código expira en {ttl_minutes} minutos.\n\n"
        "Si no solicitaste este código, ignora este mensaje."
    )


class WhatsAppGateway:
    """Client for the WhatsApp HTTP gateway that owns the linked device session."""

    service = "WhatsApp gateway"

    def __init__(self, http: httpx.AsyncClient, base_url: str, session: str = "default", api_key: str = "") -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.session = session
        self._headers = {"Accept": "application/json"}
        if api_key:
            self._headers["X-Api-Key"] = api_key

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "WhatsAppGateway":
        if not settings.whatsapp_configured:
            raise ConfigurationError(
                "WhatsApp service not configured. Set WHATSAPP_SERVICE_URL in environment."
            )
        return cls(http, settings.whatsapp_service_url, settings.whatsapp_session, settings.whatsapp_api_key)

    async def send_text(self, chat_id: str, text: str) -> dict:
        return await send(
            self.http,
            "POST",
            f"{self.base_url}/api/sendText",
            service=self.service,
            error_message="Error al enviar el mensaje. Verifica el número.",
            headers=self._headers,
            json={"session": self.session, "chatId": chat_id, "text": text},
        )

    async def get_session(self) -> dict:
        return await send(
            self.http,
            "GET",
            f"{self.base_url}/api/sessions/{self.session}",
            service=self.service,
            error_message="No se pudo obtener el estado de WhatsApp",
            headers=self._headers,
        )

    async def is_connected(self) -> bool:
        info = await self.get_session()
        return (info or {}).get("status") == CONNECTED_STATUS

    async def get_qr_value(self) -> str | None:
        """Raw pairing string, or None when the gateway has none to offer yet."""
        result = await send(
            self.http,
            "GET",
            f"{self.base_url}/api/{self.session}/auth/qr",
            service=self.service,
            error_message="QR no disponible",
            headers=self._headers,
            params={"format": "raw"},
        )
        if isinstance(result, dict):
            return result.get("value") or None
        return None
