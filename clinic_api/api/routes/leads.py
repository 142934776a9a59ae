import httpx
from fastapi import APIRouter, Depends

from clinic_api.api.deps import get_http_client, get_settings
from clinic_api.api.schemas.lead import LeadRequest, LeadResponse
from clinic_api.core.config import Settings
from clinic_api.services.crm_client import FrappeClient
from clinic_api.services.lead_service import LeadSubmission, LeadSubmissionOptions

router = APIRouter(tags=["leads"])


@router.post("/crm-lead", response_model=LeadResponse)
async def create_lead(
    body: LeadRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> LeadResponse:
    crm = FrappeClient.from_settings(http, settings)
    submission = LeadSubmission(
        crm,
        LeadSubmissionOptions(
            max_photos=settings.max_lead_photos,
            custom_fields=settings.lead_custom_field_map,
        ),
    )
    outcome = await submission.submit(
        personal=body.personal.model_dump(),
        medical=body.medical,
        interest=body.interest,
        fotos=body.photo_dicts(),
        comentario=body.comentario,
    )
    return LeadResponse(
        message="Lead created successfully",
        lead_id=outcome.lead_id,
        photos_uploaded=outcome.photos_uploaded,
    )
