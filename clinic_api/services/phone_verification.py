import asyncio
import logging

from clinic_api.core.errors import InvalidInput, UpstreamError
from clinic_api.services.verification_service import VerificationCodeManager, VerificationResult
from clinic_api.services.whatsapp_gateway import (
    WhatsAppGateway,
    chat_id_for,
    normalize_phone,
    verification_message,
)

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60


class GatewayDisconnected(UpstreamError):
    def __init__(self) -> None:
        super().__init__("WhatsApp no está conectado. Escanea el QR primero.", status_code=503)


def phone_key_for(phone: str | None) -> str:
    key = normalize_phone(phone or "")
    if not key:
        raise InvalidInput("Teléfono requerido")
    return key


async def send_verification_code(
    manager: VerificationCodeManager,
    gateway: WhatsAppGateway,
    phone: str | None,
    nombre: str | None = None,
) -> int:
    """Issue a code for the phone and deliver it over WhatsApp. Returns seconds until expiry."""
    key = phone_key_for(phone)
    if not await gateway.is_connected():
        raise GatewayDisconnected()
    code = manager.issue_code(key)
    ttl_minutes = int(manager.ttl.total_seconds() // 60)
    try:
        await gateway.send_text(chat_id_for(key), verification_message(code, ttl_minutes, nombre))
    except UpstreamError:
        # An undelivered code cannot be verified
        manager.discard(key)
        raise
    logger.info("Verification code sent to %s", key)
    return int(manager.ttl.total_seconds())


def verify_code(manager: VerificationCodeManager, phone: str | None, code: str | None) -> VerificationResult:
    if not code:
        raise InvalidInput("Teléfono y código requeridos")
    return manager.check_code(phone_key_for(phone), code)


async def verification_cleanup_loop(
    manager: VerificationCodeManager, interval: float = CLEANUP_INTERVAL_SECONDS
) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = manager.purge_expired()
        if removed:
            logger.info("Verification cleanup: dropped %d expired code(s)", removed)
