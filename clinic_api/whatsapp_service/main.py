"""Standalone WhatsApp verification service.

Runs next to the WhatsApp HTTP gateway that holds the linked device session,
issues verification codes and exposes the pairing QR for first-time linking.
"""
import asyncio
import base64
import io
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
import qrcode
import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from clinic_api.api.deps import get_http_client, get_settings, get_verification_manager
from clinic_api.api.schemas.whatsapp import (
    SendCodeRequest,
    SendCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from clinic_api.core.config import Settings, settings
from clinic_api.core.errors import ConfigurationError, UpstreamError
from clinic_api.core.handlers import install_cors, register_exception_handlers
from clinic_api.services.phone_verification import (
    GatewayDisconnected,
    send_verification_code,
    verification_cleanup_loop,
    verify_code,
)
from clinic_api.services.verification_service import VerificationCodeManager
from clinic_api.services.whatsapp_gateway import WhatsAppGateway

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()


def qr_data_url(value: str) -> str:
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(value)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return f"data:image/png;base64,{base64.b64encode(buffer.getvalue()).decode()}"


async def _gateway_connected(gateway: WhatsAppGateway | None) -> bool:
    if gateway is None:
        return False
    try:
        return await gateway.is_connected()
    except UpstreamError as e:
        logger.warning("WhatsApp gateway status unavailable: %s", e.details)
        return False


def get_gateway(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> WhatsAppGateway:
    return WhatsAppGateway.from_settings(http, settings)


def get_optional_gateway(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> WhatsAppGateway | None:
    """Gateway client, or None when WHATSAPP_SERVICE_URL is unset."""
    try:
        return WhatsAppGateway.from_settings(http, settings)
    except ConfigurationError as e:
        logger.warning("WhatsApp gateway unavailable: %s", e.message)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("WhatsApp verification service on port %d", settings.port)
    logger.info("Health check: http://localhost:%d/health", settings.port)
    logger.info("QR code: http://localhost:%d/qr", settings.port)
    task = asyncio.create_task(verification_cleanup_loop(get_verification_manager()))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Clinic WhatsApp verification service",
    version="0.1.0",
    lifespan=lifespan,
)

install_cors(app)
register_exception_handlers(app)


@app.get("/health")
async def health(gateway: WhatsAppGateway | None = Depends(get_optional_gateway)) -> dict:
    connected = await _gateway_connected(gateway)
    return {
        "status": "ok",
        "whatsapp": "connected" if connected else "disconnected",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/qr")
async def pairing_qr(gateway: WhatsAppGateway = Depends(get_gateway)):
    if await _gateway_connected(gateway):
        return {"success": True, "message": "WhatsApp ya está conectado", "connected": True}
    try:
        value = await gateway.get_qr_value()
    except UpstreamError:
        value = None
    if not value:
        return {
            "success": False,
            "message": "QR no disponible aún, espera unos segundos...",
            "connected": False,
        }
    try:
        data_url = qr_data_url(value)
    except Exception as e:
        logger.exception("QR rendering failed: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "qr": data_url, "connected": False}


@app.post("/send-code", response_model=SendCodeResponse)
async def send_code(
    body: SendCodeRequest,
    gateway: WhatsAppGateway = Depends(get_gateway),
    manager: VerificationCodeManager = Depends(get_verification_manager),
):
    try:
        expires_in = await send_verification_code(manager, gateway, body.phone, body.nombre)
    except GatewayDisconnected as e:
        return JSONResponse(status_code=503, content={"success": False, "error": e.message})
    except UpstreamError as e:
        logger.error("Error sending verification code: %s", e.details)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Error al enviar el mensaje. Verifica el número."},
        )
    return SendCodeResponse(expiresIn=expires_in)


@app.post("/verify-code", response_model=VerifyCodeResponse)
async def verify(
    body: VerifyCodeRequest,
    manager: VerificationCodeManager = Depends(get_verification_manager),
) -> VerifyCodeResponse:
    verify_code(manager, body.phone, body.code)
    return VerifyCodeResponse()


@app.get("/status")
async def status(
    gateway: WhatsAppGateway | None = Depends(get_optional_gateway),
    manager: VerificationCodeManager = Depends(get_verification_manager),
) -> dict:
    return {
        "whatsappConnected": await _gateway_connected(gateway),
        "pendingVerifications": manager.pending_count(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
    }


def run() -> None:
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
