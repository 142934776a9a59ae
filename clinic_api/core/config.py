from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Frappe CRM
    frappe_crm_url: str = "https://crm.dranikkita.com"
    frappe_api_key: str = ""
    frappe_api_secret: str = ""

    # MercadoPago
    mercadopago_access_token: str = ""
    mercadopago_api_url: str = "https://api.mercadopago.com"
    currency_id: str = "CLP"
    statement_descriptor: str = "DRA NIKKITA"

    # Public site, used for payment redirects and the webhook URL
    site_url: str = "https://dranikkita.com"

    # WhatsApp HTTP gateway
    whatsapp_service_url: str = ""
    whatsapp_api_key: str = ""
    whatsapp_session: str = "default"

    # Companion service
    port: int = 3001

    # Upstream calls
    http_timeout_seconds: float = 15.0

    # Agenda
    work_start: str = "09:00"
    work_end: str = "18:00"
    slot_duration_minutes: int = 30
    break_start: str = "13:00"
    break_end: str = "14:00"
    appointment_duration_minutes: int = 30

    # Phone verification
    verification_code_ttl_minutes: int = 10
    verification_max_attempts: int = 3

    # Lead intake
    max_lead_photos: int = 3
    # Comma separated "answer_path:crm_field" pairs, e.g. "medical.edad:custom_edad"
    lead_custom_fields: str = ""

    # Env
    env: str = "development"

    @property
    def crm_configured(self) -> bool:
        return bool(self.frappe_api_key and self.frappe_api_secret)

    @property
    def payments_configured(self) -> bool:
        return bool(self.mercadopago_access_token)

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_service_url)

    @property
    def lead_custom_field_map(self) -> dict[str, str]:
        pairs: dict[str, str] = {}
        for item in self.lead_custom_fields.split(","):
            if ":" not in item:
                continue
            path, field = item.split(":", 1)
            if path.strip() and field.strip():
                pairs[path.strip()] = field.strip()
        return pairs


settings = Settings()
