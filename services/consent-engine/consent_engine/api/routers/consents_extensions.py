from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request

from consent_engine.api.deps import get_consent_service, pagination_params
from consent_engine.api.schemas.consents import (
    CONSENTS_PATH,
    ExtensionsResponse,
    consent_url,
    extensions_response,
)
from consent_engine.security.jwt import require_scopes
from consent_engine.services.consent_service import ConsentService
from consent_engine.utils.pagination import Pagination

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

@router.get(
    "/{consent_id}/extensions",
    response_model=ExtensionsResponse,
    response_model_exclude_none=True,
    summary="List the extensions of a consent, most recent first",
)
async def list_consent_extensions(
    consent_id: str,
    request: Request,
    pagination: Pagination = Depends(pagination_params),
    client: Dict[str, Any] = Depends(require_scopes("consents")),
    consents: ConsentService = Depends(get_consent_service),
):
    page = await consents.list_extensions(consent_id, pagination, client_id=client["client_id"])
    return extensions_response(page, consent_url(str(request.base_url), consent_id, "/extensions"))
