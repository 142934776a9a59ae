from collections.abc import AsyncGenerator
from datetime import timedelta

import httpx

from clinic_api.core.config import Settings, settings
from clinic_api.services.verification_service import VerificationCodeManager

_verification_manager = VerificationCodeManager(
    ttl=timedelta(minutes=settings.verification_code_ttl_minutes),
    max_attempts=settings.verification_max_attempts,
)


def get_settings() -> Settings:
    return settings


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """One client per request; every upstream call shares its timeout."""
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        yield client


def get_verification_manager() -> VerificationCodeManager:
    """Process-wide store of pending phone verifications."""
    return _verification_manager
