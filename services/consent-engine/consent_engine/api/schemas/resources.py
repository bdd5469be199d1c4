from __future__ import annotations
from typing import List
from pydantic import BaseModel, ConfigDict, Field

from consent_engine.api.schemas.consents import Links, Meta, paginated_links
from consent_engine.domain.consent import ResourceStatus, ResourceType
from consent_engine.services.resource_service import Resource
from consent_engine.utils.pagination import Page


class ResourceData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource_id: str = Field(alias="resourceId")
    type: ResourceType
    status: ResourceStatus


class ResourcesResponse(BaseModel):
    data: List[ResourceData]
    links: Links
    meta: Meta


def resources_response(page: Page[Resource], self_url: str) -> ResourcesResponse:
    return ResourcesResponse(
        data=[ResourceData(resource_id=r.id, type=r.type, status=r.status) for r in page.records],
        links=paginated_links(self_url, page),
        meta=Meta(total_records=page.total_records, total_pages=page.total_pages),
    )
