from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request

from consent_engine.api.deps import get_consent_service
from consent_engine.api.schemas.consents import (
    CONSENTS_PATH,
    ConsentRejectRequest,
    ConsentResponse,
    consent_response,
    consent_url,
)
from consent_engine.domain.consent import RejectionInfo
from consent_engine.security.jwt import AUTHORISER_ROLE, require_role
from consent_engine.services.consent_service import ConsentService

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

@router.post(
    "/{consent_id}/reject",
    response_model=ConsentResponse,
    response_model_exclude_none=True,
    summary="Reject a consent with an explicit reason",
    responses={422: {"description": "Consent already rejected"}},
)
async def reject_consent(
    consent_id: str,
    payload: ConsentRejectRequest,
    request: Request,
    caller: Dict[str, Any] = Depends(require_role(AUTHORISER_ROLE)),
    consents: ConsentService = Depends(get_consent_service),
):
    info = RejectionInfo(rejected_by=payload.rejected_by, reason=payload.reason)
    consent = await consents.reject(consent_id, info)
    return consent_response(consent, consent_url(str(request.base_url), consent.id))
