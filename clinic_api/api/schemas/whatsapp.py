from pydantic import BaseModel, ConfigDict


class SendCodeRequest(BaseModel):
    phone: str | None = None
    nombre: str | None = None


class VerifyCodeRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    phone: str | None = None
    code: str | None = None


class WhatsAppActionRequest(BaseModel):
    """Body shared by the proxy's POST actions."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    phone: str | None = None
    nombre: str | None = None
    code: str | None = None


class SendCodeResponse(BaseModel):
    success: bool = True
    message: str = "Código enviado por WhatsApp"
    expiresIn: int


class VerifyCodeResponse(BaseModel):
    success: bool = True
    message: str = "Número verificado correctamente"
