from __future__ import annotations
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status

from consent_engine.api.deps import get_consent_service, get_idempotency_cache
from consent_engine.api.schemas.consents import (
    CONSENTS_PATH,
    ConsentCreateRequest,
    ConsentResponse,
    consent_response,
    consent_url,
)
from consent_engine.domain.consent import ConsentDraft
from consent_engine.security.jwt import require_scopes
from consent_engine.services.consent_service import ConsentService
from consent_engine.utils.idempotency import IdempotencyCache, IdempotencyConflict, canonical_sha256

router = APIRouter(prefix=CONSENTS_PATH, tags=["consents"])

COMMON_HEADERS = {
    "X-Request-ID": {
        "description": "Correlation ID for tracing.",
        "schema": {"type": "string"},
    },
}

CREATE_RESPONSES = {
    201: {"description": "Created", "headers": {**COMMON_HEADERS, "Location": {"description": "Resource path", "schema": {"type": "string"}}}},
    200: {"description": "Idempotent replay", "headers": {**COMMON_HEADERS, "Idempotency-Replayed": {"description": "True if replayed", "schema": {"type": "boolean"}}}},
    409: {"description": "Conflict (idempotency)", "headers": COMMON_HEADERS},
    422: {"description": "Invalid permission combination or expiration"},
}

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a consent",
    response_model=ConsentResponse,
    response_model_exclude_none=True,
    responses=CREATE_RESPONSES,
)
async def create_consent_endpoint(
    request: Request,
    payload: ConsentCreateRequest,
    response: Response,
    client: Dict[str, Any] = Depends(require_scopes("consents")),
    consents: ConsentService = Depends(get_consent_service),
    idempotency: Optional[IdempotencyCache] = Depends(get_idempotency_cache),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    client_id = client["client_id"]

    body_sha = None
    if idempotency is not None and idempotency_key:
        body_sha = canonical_sha256(payload.model_dump(mode="json", by_alias=True))
        try:
            replay = await idempotency.begin(client_id, idempotency_key, body_sha)
        except IdempotencyConflict:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="idempotency_conflict")
        if replay is not None:
            response.status_code = status.HTTP_200_OK
            response.headers["Idempotency-Replayed"] = "true"
            if "Location" in replay.headers:
                response.headers["Location"] = replay.headers["Location"]
            return ConsentResponse.model_validate(replay.response)

    data = payload.data
    draft = ConsentDraft(
        client_id=client_id,
        user_identifier=data.logged_user.document.identification,
        business_identifier=data.business_entity.document.identification if data.business_entity else None,
        permissions=data.permissions,
        expires_at=data.expiration_date_time,
    )
    consent = await consents.create(draft)

    self_url = consent_url(str(request.base_url), consent.id)
    resp = consent_response(consent, self_url)
    response.headers["Location"] = self_url

    if body_sha is not None:
        await idempotency.complete(
            client_id,
            idempotency_key,
            body_sha,
            response=resp.model_dump(mode="json", by_alias=True, exclude_none=True),
            status_code=status.HTTP_201_CREATED,
            headers={"Location": self_url},
        )
    return resp
