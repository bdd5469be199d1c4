from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from consent_engine.api.deps import get_consent_service
from consent_engine.api.schemas.consents import (
    CONSENTS_PATH,
    ConsentExtendRequest,
    ConsentResponse,
    consent_response,
    consent_url,
)
from consent_engine.domain.consent import ExtensionRequest
from consent_engine.security.jwt import require_scopes
from consent_engine.services.consent_service import ConsentService

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

@router.post(
    "/{consent_id}/extends",
    status_code=status.HTTP_201_CREATED,
    response_model=ConsentResponse,
    response_model_exclude_none=True,
    summary="Extend the validity of an authorised consent",
    responses={
        403: {"description": "Extension requested by someone other than the consenting customer"},
        422: {"description": "Invalid expiration, consent not authorised, or joint account pending"},
    },
)
async def extend_consent(
    consent_id: str,
    payload: ConsentExtendRequest,
    request: Request,
    client: Dict[str, Any] = Depends(require_scopes("openid", "consent")),
    consents: ConsentService = Depends(get_consent_service),
    customer_ip_address: str = Header(..., alias="x-fapi-customer-ip-address"),
    customer_user_agent: str = Header(..., alias="x-customer-user-agent"),
):
    # The token must have been issued for this very consent
    if client["consent_id"] != consent_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_request")

    data = payload.data
    extension = ExtensionRequest(
        expires_at=data.expiration_date_time,
        user_identifier=data.logged_user.document.identification,
        business_identifier=data.business_entity.document.identification if data.business_entity else None,
        user_ip_address=customer_ip_address,
        user_agent=customer_user_agent,
    )
    consent = await consents.extend(consent_id, extension, client_id=client["client_id"])
    return consent_response(consent, consent_url(str(request.base_url), consent.id))
