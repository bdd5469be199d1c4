from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Response, status

from consent_engine.api.deps import get_consent_service
from consent_engine.api.schemas.consents import CONSENTS_PATH
from consent_engine.security.jwt import require_scopes
from consent_engine.services.consent_service import ConsentService

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

@router.delete(
    "/{consent_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a consent",
    responses={422: {"description": "Consent already rejected"}},
)
async def delete_consent(
    consent_id: str,
    client: Dict[str, Any] = Depends(require_scopes("consents")),
    consents: ConsentService = Depends(get_consent_service),
):
    await consents.delete(consent_id, client_id=client["client_id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
