import logging

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from clinic_api.api.deps import get_http_client, get_settings, get_verification_manager
from clinic_api.api.schemas.whatsapp import SendCodeResponse, VerifyCodeResponse, WhatsAppActionRequest
from clinic_api.core.config import Settings
from clinic_api.core.errors import ConfigurationError, UpstreamError
from clinic_api.services.phone_verification import send_verification_code, verify_code
from clinic_api.services.verification_service import VerificationCodeManager
from clinic_api.services.whatsapp_gateway import WhatsAppGateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/whatsapp-verify", tags=["whatsapp"])

INVALID_ACTION = "Invalid action. Use: send-code, verify-code, or status"


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@router.post("")
async def whatsapp_post(
    body: WhatsAppActionRequest,
    action: str | None = Query(None),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
    manager: VerificationCodeManager = Depends(get_verification_manager),
):
    if action == "send-code":
        try:
            gateway = WhatsAppGateway.from_settings(http, settings)
            expires_in = await send_verification_code(manager, gateway, body.phone, body.nombre)
        except ConfigurationError as e:
            return _failure(500, e.message)
        except UpstreamError as e:
            return _failure(e.status_code, e.message)
        return SendCodeResponse(expiresIn=expires_in)
    if action == "verify-code":
        verify_code(manager, body.phone, body.code)
        return VerifyCodeResponse()
    if action == "status":
        return _failure(405, "Method not allowed")
    return _failure(400, INVALID_ACTION)


@router.get("")
async def whatsapp_get(
    action: str | None = Query(None),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    if action in ("send-code", "verify-code"):
        return _failure(405, "Method not allowed")
    if action != "status":
        return _failure(400, INVALID_ACTION)
    try:
        gateway = WhatsAppGateway.from_settings(http, settings)
        session = await gateway.get_session()
    except ConfigurationError as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "status": "disconnected", "error": e.message},
        )
    except UpstreamError as e:
        logger.warning("WhatsApp status check failed: %s", e.details)
        return JSONResponse(
            status_code=503,
            content={"success": False, "status": "disconnected", "error": e.message},
        )
    return {"success": True, "status": session.get("status"), "name": session.get("name")}
