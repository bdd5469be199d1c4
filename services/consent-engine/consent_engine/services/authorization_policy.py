from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from consent_engine.domain.consent import Consent, RejectedBy, RejectionInfo, RejectionReason, ResourceBinding
from consent_engine.domain.errors import AccessDenied, ConsentNotAuthorised, InvalidStatusTransition, MissingPermissions
from consent_engine.domain.permissions import Permission
from consent_engine.services.consent_service import ConsentService

log = logging.getLogger(__name__)


class ConsentAuthorizationPolicy:
    """Entry points for the login flow and for resource-serving endpoints.

    The login/consent page (outside this service) calls :meth:`grant` or
    :meth:`deny` once the customer answered. Resource endpoints call
    :meth:`consent_for_access` with the consent id taken from the access token.
    """

    def __init__(self, consents: ConsentService) -> None:
        self.consents = consents

    async def grant(
        self,
        consent_id: str,
        subject_identifier: str,
        permissions: Optional[Sequence[str]] = None,
        resources: Iterable[ResourceBinding] = (),
    ) -> Consent:
        consent = await self.consents.consent(consent_id)
        if not consent.is_awaiting_authorisation:
            raise InvalidStatusTransition("the consent is not awaiting authorisation")
        if consent.user_identifier != subject_identifier:
            raise AccessDenied("the consent was created for another user")
        return await self.consents.authorize(consent_id, permissions=permissions, resources=resources)

    async def deny(self, consent_id: str) -> Consent:
        info = RejectionInfo(rejected_by=RejectedBy.USER, reason=RejectionReason.CUSTOMER_MANUALLY_REJECTED)
        return await self.consents.reject(consent_id, info)

    async def consent_for_access(
        self,
        consent_id: Optional[str],
        client_id: Optional[str],
        required_permissions: Sequence[Permission] = (),
    ) -> Consent:
        if not consent_id:
            raise AccessDenied("the access token is not bound to a consent")
        consent = await self.consents.consent(consent_id, client_id)
        if not consent.is_authorised:
            log.debug("consent_not_authorised", extra={"consent_id": consent_id, "status": consent.status.value})
            raise ConsentNotAuthorised()
        if not consent.has_permissions(required_permissions):
            log.debug("consent_missing_permissions", extra={"consent_id": consent_id})
            raise MissingPermissions()
        return consent
