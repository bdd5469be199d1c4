from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request

from consent_engine.api.deps import get_consent_service
from consent_engine.api.schemas.consents import CONSENTS_PATH, ConsentResponse, consent_response, consent_url
from consent_engine.security.jwt import require_scopes
from consent_engine.services.consent_service import ConsentService

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

@router.get(
    "/{consent_id}",
    response_model=ConsentResponse,
    response_model_exclude_none=True,
    summary="Get consent detail",
)
async def get_consent_detail(
    consent_id: str,
    request: Request,
    client: Dict[str, Any] = Depends(require_scopes("consents")),
    consents: ConsentService = Depends(get_consent_service),
):
    # Reading may reject a consent whose window or expiration has passed
    consent = await consents.consent(consent_id, client_id=client["client_id"])
    return consent_response(consent, consent_url(str(request.base_url), consent.id))
