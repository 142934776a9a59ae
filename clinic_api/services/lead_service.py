"""Lead intake: one configurable submission flow for the pre-evaluation chatbot.

The lead record itself is the primary outcome. The comment and the photo
uploads are secondary and run best-effort.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from clinic_api.core.best_effort import BestEffortResult, run_best_effort
from clinic_api.services.crm_client import LEAD_DOCTYPE, FrappeClient

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "No especificado"
_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)
_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/gif": "gif",
}


def split_name(nombre: str | None) -> tuple[str, str]:
    parts = (nombre or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _value(section: dict | None, key: str, suffix: str = "") -> str:
    v = (section or {}).get(key)
    if v is None or v == "":
        return NOT_SPECIFIED
    return f"{v}{suffix}"


def _detail(section: dict | None, key: str) -> str:
    v = (section or {}).get(key)
    return f"\n    Detalle: {v}" if v else ""


def build_lead_notes(
    personal: dict | None,
    medical: dict | None,
    interest: dict | None,
    registered_at: datetime | None = None,
    source: str = "Chatbot Web",
) -> str:
    registered_at = registered_at or datetime.now()
    lines = [
        "📋 INFORMACIÓN DEL LEAD - PRE-EVALUACIÓN",
        "",
        "👤 DATOS PERSONALES",
        f"- Nombre: {_value(personal, 'nombre')}",
        f"- Teléfono: {_value(personal, 'telefono')}",
        f"- Email: {_value(personal, 'email')}",
        "",
        "📊 DATOS MÉDICOS",
        f"- Edad: {_value(medical, 'edad')}",
        f"- Estatura: {_value(medical, 'estatura', ' cm')}",
        f"- Peso: {_value(medical, 'peso', ' kg')}",
        f"- Cirugías previas: {_value(medical, 'cirugiasPrevias')}{_detail(medical, 'cirugiasPreviasDetalle')}",
        f"- Condiciones médicas: {_value(medical, 'condicionesMedicas')}{_detail(medical, 'condicionesMedicasDetalle')}",
        f"- Medicamentos: {_value(medical, 'medicamentos')}{_detail(medical, 'medicamentosDetalle')}",
        f"- Fumadora: {_value(medical, 'fumadora')}",
        "",
        "💭 INTERÉS Y EXPECTATIVAS",
        f"- Razón de consulta: {_value(interest, 'razon')}",
        f"- Expectativas: {_value(interest, 'expectativas')}",
        f"- Disponibilidad: {_value(interest, 'disponibilidad')}",
        f"- Cómo nos conoció: {_value(interest, 'comoNosConociste')}",
        "",
        f"📅 Fecha de registro: {registered_at.strftime('%d-%m-%Y %H:%M:%S')}",
        f"🌐 Fuente: {source}",
    ]
    return "\n".join(lines)


def _lookup(sections: dict[str, dict | None], path: str) -> Any:
    section_name, _, key = path.partition(".")
    return (sections.get(section_name) or {}).get(key)


def build_lead_payload(
    personal: dict | None,
    notes: str,
    custom_fields: dict[str, Any] | None = None,
) -> dict:
    first_name, last_name = split_name((personal or {}).get("nombre"))
    lead = {
        "doctype": LEAD_DOCTYPE,
        "first_name": first_name,
        "last_name": last_name,
        "email": (personal or {}).get("email") or "",
        "mobile_no": (personal or {}).get("telefono") or "",
        "source": "Website",
        "notes": notes,
    }
    lead.update(custom_fields or {})
    return lead


@dataclass
class DecodedPhoto:
    filename: str
    content: bytes
    content_type: str


def decode_photo(raw: str, index: int, lead_id: str, name: str | None = None) -> DecodedPhoto:
    """Accepts bare base64 or a data URL. Raises ValueError on undecodable input."""
    content_type = "image/jpeg"
    payload = raw.strip()
    m = _DATA_URL.match(payload)
    if m:
        content_type = m.group("mime").lower()
        payload = m.group("data")
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"photo {index} is not valid base64") from e
    if not content:
        raise ValueError(f"photo {index} is empty")
    ext = _EXTENSIONS.get(content_type, "jpg")
    filename = name or f"{lead_id}-foto-{index}.{ext}"
    return DecodedPhoto(filename=filename, content=content, content_type=content_type)


@dataclass
class LeadSubmissionOptions:
    add_comment: bool = True
    upload_photos: bool = True
    max_photos: int = 3
    # answer path ("medical.edad") -> CRM Lead field name
    custom_fields: dict[str, str] = field(default_factory=dict)


@dataclass
class LeadSubmissionOutcome:
    lead_id: str | None
    side_effects: list[BestEffortResult] = field(default_factory=list)

    @property
    def photos_uploaded(self) -> int:
        return sum(1 for r in self.side_effects if r.label.startswith("photo") and r.ok)


class LeadSubmission:
    def __init__(self, crm: FrappeClient, options: LeadSubmissionOptions | None = None) -> None:
        self.crm = crm
        self.options = options or LeadSubmissionOptions()

    def _custom_field_values(self, sections: dict[str, dict | None]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for path, crm_field in self.options.custom_fields.items():
            v = _lookup(sections, path)
            if v is not None and v != "":
                values[crm_field] = v
        return values

    async def _upload_photo(self, lead_id: str, index: int, photo: dict) -> dict:
        decoded = decode_photo(photo["data"], index, lead_id, photo.get("nombre"))
        return await self.crm.upload_file(
            decoded.filename,
            decoded.content,
            decoded.content_type,
            doctype=LEAD_DOCTYPE,
            docname=lead_id,
            is_private=True,
        )

    async def submit(
        self,
        personal: dict | None,
        medical: dict | None,
        interest: dict | None,
        fotos: list[dict] | None = None,
        comentario: str | None = None,
    ) -> LeadSubmissionOutcome:
        sections = {"personal": personal, "medical": medical, "interest": interest}
        notes = build_lead_notes(personal, medical, interest)
        lead = build_lead_payload(personal, notes, self._custom_field_values(sections))

        data = await self.crm.create_lead(lead)
        lead_id = data.get("name")
        outcome = LeadSubmissionOutcome(lead_id=lead_id)
        logger.info("Lead created: %s", lead_id)
        if not lead_id:
            return outcome

        if self.options.add_comment:
            content = notes.replace("\n", "<br>")
            if comentario:
                content += f"<br><br><b>Comentario:</b> {comentario}"
            outcome.side_effects.append(
                await run_best_effort("comment", self.crm.add_comment(LEAD_DOCTYPE, lead_id, content))
            )

        if self.options.upload_photos and fotos:
            if len(fotos) > self.options.max_photos:
                logger.info("Lead %s sent %d photos, keeping the first %d", lead_id, len(fotos), self.options.max_photos)
            for i, photo in enumerate(fotos[: self.options.max_photos], start=1):
                outcome.side_effects.append(
                    await run_best_effort(f"photo-{i}", self._upload_photo(lead_id, i, photo))
                )

        failed = [r.label for r in outcome.side_effects if not r.ok]
        if failed:
            logger.warning("Lead %s created, secondary steps failed: %s", lead_id, ", ".join(failed))
        return outcome
