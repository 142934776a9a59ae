import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from clinic_api.api.deps import get_verification_manager
from clinic_api.api.routes import appointments, availability, leads, payments, whatsapp
from clinic_api.core.config import _ENV_FILE, settings
from clinic_api.core.handlers import install_cors, register_exception_handlers
from clinic_api.services.phone_verification import verification_cleanup_loop

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


def _log_configuration() -> None:
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if not settings.crm_configured:
        logger.warning("Frappe CRM: NOT configured. Set FRAPPE_API_KEY and FRAPPE_API_SECRET")
    if not settings.payments_configured:
        logger.warning("MercadoPago: NOT configured. Set MERCADOPAGO_ACCESS_TOKEN")
    if not settings.whatsapp_configured:
        logger.warning("WhatsApp gateway: NOT configured. Set WHATSAPP_SERVICE_URL")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _log_configuration()
    task = asyncio.create_task(verification_cleanup_loop(get_verification_manager()))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Clinic API",
    description="Appointments, availability, leads, payments and WhatsApp phone verification",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

install_cors(app)
register_exception_handlers(app)

app.include_router(appointments.router, prefix="/api")
app.include_router(availability.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(payments.router, prefix="/api")
app.include_router(whatsapp.router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
