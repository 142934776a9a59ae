from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PersonalData(BaseModel):
    model_config = ConfigDict(extra="allow")

    nombre: str | None = None
    telefono: str | None = None
    email: str | None = None


class LeadPhoto(BaseModel):
    data: str  # base64 or data URL
    nombre: str | None = None


class LeadRequest(BaseModel):
    personal: PersonalData = Field(default_factory=PersonalData)
    medical: dict[str, Any] = Field(default_factory=dict)
    interest: dict[str, Any] = Field(default_factory=dict)
    fotos: list[str | LeadPhoto] = Field(default_factory=list)
    comentario: str | None = None

    def photo_dicts(self) -> list[dict]:
        out: list[dict] = []
        for foto in self.fotos:
            if isinstance(foto, str):
                out.append({"data": foto, "nombre": None})
            else:
                out.append(foto.model_dump())
        return out


class LeadResponse(BaseModel):
    success: bool = True
    message: str
    lead_id: str | None = None
    photos_uploaded: int = 0
