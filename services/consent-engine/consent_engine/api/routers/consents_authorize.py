from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request

from consent_engine.api.deps import get_authorization_policy
from consent_engine.api.schemas.consents import (
    CONSENTS_PATH,
    ConsentAuthoriseRequest,
    ConsentResponse,
    consent_response,
    consent_url,
)
from consent_engine.domain.consent import ResourceBinding
from consent_engine.security.jwt import AUTHORISER_ROLE, require_role
from consent_engine.services.authorization_policy import ConsentAuthorizationPolicy

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

# Called by the customer-facing login/consent page, not by third-party clients
@router.post(
    "/{consent_id}/authorise",
    response_model=ConsentResponse,
    response_model_exclude_none=True,
    summary="Record the customer's approval of a consent",
    responses={409: {"description": "Consent is not awaiting authorisation"}},
)
async def authorise_consent(
    consent_id: str,
    payload: ConsentAuthoriseRequest,
    request: Request,
    caller: Dict[str, Any] = Depends(require_role(AUTHORISER_ROLE)),
    policy: ConsentAuthorizationPolicy = Depends(get_authorization_policy),
):
    consent = await policy.grant(
        consent_id,
        payload.subject,
        permissions=payload.permissions,
        resources=[ResourceBinding(type=r.type, id=r.id) for r in payload.resources],
    )
    return consent_response(consent, consent_url(str(request.base_url), consent.id))
