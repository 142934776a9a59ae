import logging

import httpx

from clinic_api.core.config import Settings
from clinic_api.core.errors import ConfigurationError
from clinic_api.services.upstream import send

logger = logging.getLogger(__name__)


class MercadoPagoClient:
    service = "MercadoPago"

    def __init__(self, http: httpx.AsyncClient, base_url: str, access_token: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "MercadoPagoClient":
        if not settings.payments_configured:
            logger.error("Missing MercadoPago access token")
            raise ConfigurationError("Payment configuration error")
        return cls(http, settings.mercadopago_api_url, settings.mercadopago_access_token)

    async def create_preference(self, preference: dict) -> dict:
        return await send(
            self.http,
            "POST",
            f"{self.base_url}/checkout/preferences",
            service=self.service,
            error_message="Error creating payment",
            headers=self._headers,
            json=preference,
        )

    async def get_payment(self, payment_id: str) -> dict:
        return await send(
            self.http,
            "GET",
            f"{self.base_url}/v1/payments/{payment_id}",
            service=self.service,
            error_message="Error fetching payment",
            headers=self._headers,
        )
