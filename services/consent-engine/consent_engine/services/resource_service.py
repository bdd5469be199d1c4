from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from consent_engine.domain.consent import Consent, ResourceStatus, ResourceType
from consent_engine.services.consent_service import ConsentService
from consent_engine.utils.pagination import Page, Pagination, paginate


@dataclass(frozen=True)
class Resource:
    id: str
    type: ResourceType
    status: ResourceStatus


class ResourceService:
    def __init__(self, consents: ConsentService) -> None:
        self.consents = consents

    def resources_of(self, consent: Consent) -> list[Resource]:
        # Gating is evaluated fresh on every listing
        now = self.consents.now()
        return [
            Resource(id=binding.id, type=binding.type, status=self.consents.gating.status_of(consent, binding.type, now))
            for binding in consent.resources
        ]

    def page(self, consent: Consent, pagination: Optional[Pagination] = None) -> Page[Resource]:
        return paginate(self.resources_of(consent), pagination or Pagination())
