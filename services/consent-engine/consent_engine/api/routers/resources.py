from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request

from consent_engine.api.deps import get_authorization_policy, get_resource_service, pagination_params
from consent_engine.api.schemas.consents import RESOURCES_PATH
from consent_engine.api.schemas.resources import ResourcesResponse, resources_response
from consent_engine.domain.permissions import Permission
from consent_engine.security.jwt import require_scopes
from consent_engine.services.authorization_policy import ConsentAuthorizationPolicy
from consent_engine.services.resource_service import ResourceService
from consent_engine.utils.pagination import Pagination

router = APIRouter(prefix=RESOURCES_PATH, tags=["resources"])

@router.get(
    "",
    response_model=ResourcesResponse,
    response_model_exclude_none=True,
    summary="List the resources shared through the token's consent",
)
async def list_resources(
    request: Request,
    pagination: Pagination = Depends(pagination_params),
    client: Dict[str, Any] = Depends(require_scopes("resources", "consent")),
    policy: ConsentAuthorizationPolicy = Depends(get_authorization_policy),
    resource_service: ResourceService = Depends(get_resource_service),
):
    consent = await policy.consent_for_access(
        client["consent_id"], client["client_id"], [Permission.RESOURCES_READ]
    )
    page = resource_service.page(consent, pagination)
    return resources_response(page, f"{str(request.base_url).rstrip('/')}{RESOURCES_PATH}")
