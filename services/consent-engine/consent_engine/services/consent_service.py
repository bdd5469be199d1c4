from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Tuple, TypeVar
from uuid import uuid4

from consent_engine.core.clock import Clock, SystemClock
from consent_engine.core.correlation import consent_scope
from consent_engine.core.metrics import (
    inc_consents_authorised,
    inc_consents_created,
    inc_consents_extended,
    inc_consents_rejected,
    inc_write_conflicts,
)
from consent_engine.domain import lifecycle
from consent_engine.domain.consent import (
    Consent,
    ConsentDraft,
    ConsentStatus,
    Extension,
    ExtensionRequest,
    RejectionInfo,
    ResourceBinding,
    ResourceType,
)
from consent_engine.domain.errors import AccessDenied, ConcurrentModification, ConsentError, ConsentNotFound
from consent_engine.domain.gating import ResourceGatingPolicy
from consent_engine.domain.permissions import PermissionCatalog, default_catalog
from consent_engine.repositories.consents import ConsentStore
from consent_engine.utils.pagination import Page, Pagination, paginate

log = logging.getLogger(__name__)

T = TypeVar("T")
Change = Callable[[Consent, datetime], Consent]


class ConsentService:
    """Consent lifecycle engine.

    Every read goes through :meth:`consent`, which may reject a consent in
    place when its authorisation window or expiration has passed. Writes are
    compare-and-swap on the consent version and a conflicting write re-runs
    the whole read-validate-write cycle, up to ``max_write_attempts`` times.
    """

    def __init__(
        self,
        store: ConsentStore,
        clock: Optional[Clock] = None,
        catalog: Optional[PermissionCatalog] = None,
        gating: Optional[ResourceGatingPolicy] = None,
        *,
        authorisation_window: timedelta = lifecycle.AUTHORISATION_WINDOW,
        id_prefix: str = "urn:mockbank",
        max_write_attempts: int = 3,
        revalidate_on_authorise: bool = False,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.catalog = catalog or default_catalog()
        self.gating = gating or ResourceGatingPolicy()
        self.authorisation_window = authorisation_window
        self.id_prefix = id_prefix
        self.max_write_attempts = max(1, max_write_attempts)
        self.revalidate_on_authorise = revalidate_on_authorise

    def now(self) -> datetime:
        return lifecycle.as_utc(self.clock.now())

    def _new_id(self) -> str:
        return f"{self.id_prefix}:{uuid4()}"

    async def create(self, draft: ConsentDraft) -> Consent:
        now = self.now()
        expires_at = lifecycle.as_utc(draft.expires_at) if draft.expires_at else None
        try:
            permissions = self.catalog.resolve_all(draft.permissions)
            lifecycle.validate_new_consent(permissions, expires_at, now, self.catalog)
        except ConsentError as e:
            log.debug("consent_create_refused: %s", e.message)
            raise

        consent = Consent(
            id=self._new_id(),
            status=ConsentStatus.AWAITING_AUTHORISATION,
            user_identifier=draft.user_identifier,
            business_identifier=draft.business_identifier,
            client_id=draft.client_id,
            permissions=permissions,
            created_at=now,
            status_updated_at=now,
            expires_at=expires_at,
        )
        stored = await self.store.put(consent)
        inc_consents_created()
        log.info("consent_created", extra={"consent_id": stored.id, "status": stored.status.value})
        return stored

    async def consent(self, consent_id: str, client_id: Optional[str] = None) -> Consent:
        """Fetch a consent, rejecting it first if it should no longer be valid."""

        async def _attempt() -> Consent:
            current = await self._fetch(consent_id, client_id)
            normalized = lifecycle.normalize(current, self.now(), self.authorisation_window)
            if normalized is current:
                return current
            stored = await self.store.put(normalized)
            self._record_rejection(current, stored)
            return stored

        with consent_scope(consent_id):
            return await self._retry_on_conflict(consent_id, _attempt)

    async def authorize(
        self,
        consent_id: str,
        permissions: Optional[Sequence[str]] = None,
        resources: Iterable[ResourceBinding] = (),
        client_id: Optional[str] = None,
    ) -> Consent:
        granted = self.catalog.resolve_all(permissions) if permissions is not None else None
        resources = list(resources)
        catalog = self.catalog if self.revalidate_on_authorise else None

        def _authorise(consent: Consent, now: datetime) -> Consent:
            return lifecycle.authorise(consent, now, granted, resources, catalog)

        _, stored = await self._mutate(consent_id, client_id, _authorise)
        inc_consents_authorised()
        log.info(
            "consent_authorised",
            extra={"consent_id": consent_id, "status": stored.status.value, "previous_status": "AWAITING_AUTHORISATION"},
        )
        return stored

    async def reject(self, consent_id: str, info: RejectionInfo, client_id: Optional[str] = None) -> Consent:
        def _reject(consent: Consent, now: datetime) -> Consent:
            return lifecycle.reject(consent, info, now)

        previous, stored = await self._mutate(consent_id, client_id, _reject)
        self._record_rejection(previous, stored)
        return stored

    async def delete(self, consent_id: str, client_id: Optional[str] = None) -> Consent:
        """Revoke on behalf of the customer; the record stays as a rejected tombstone."""

        def _revoke(consent: Consent, now: datetime) -> Consent:
            return lifecycle.reject(consent, lifecycle.revocation_info(consent), now)

        previous, stored = await self._mutate(consent_id, client_id, _revoke)
        self._record_rejection(previous, stored)
        return stored

    async def extend(self, consent_id: str, request: ExtensionRequest, client_id: Optional[str] = None) -> Consent:
        if request.expires_at is not None:
            request = request.model_copy(update={"expires_at": lifecycle.as_utc(request.expires_at)})

        def _extend(consent: Consent, now: datetime) -> Consent:
            is_joint = self.gating.is_joint_account_subject(consent.user_identifier)
            lifecycle.validate_extension(consent, request, now, is_joint)
            return lifecycle.extend(consent, request, now)

        try:
            _, stored = await self._mutate(consent_id, client_id, _extend)
        except ConsentError as e:
            log.debug("consent_extension_refused: %s", e.message, extra={"consent_id": consent_id})
            raise
        inc_consents_extended()
        log.info("consent_extended", extra={"consent_id": consent_id, "status": stored.status.value})
        return stored

    async def list_extensions(
        self,
        consent_id: str,
        pagination: Optional[Pagination] = None,
        client_id: Optional[str] = None,
    ) -> Page[Extension]:
        consent = await self.consent(consent_id, client_id)
        return paginate(consent.extensions, pagination or Pagination())

    def is_resource_visible(
        self, consent: Consent, resource_type: ResourceType, now: Optional[datetime] = None
    ) -> bool:
        return self.gating.is_visible(consent, resource_type, now or self.now())

    async def _fetch(self, consent_id: str, client_id: Optional[str]) -> Consent:
        consent = await self.store.get(consent_id)
        if consent is None:
            raise ConsentNotFound()
        # A client may only see its own consents
        if client_id is not None and client_id != consent.client_id:
            raise AccessDenied()
        return consent

    async def _mutate(self, consent_id: str, client_id: Optional[str], change: Change) -> Tuple[Consent, Consent]:
        async def _attempt() -> Tuple[Consent, Consent]:
            current = await self.consent(consent_id, client_id)
            updated = change(current, self.now())
            return current, await self.store.put(updated)

        with consent_scope(consent_id):
            return await self._retry_on_conflict(consent_id, _attempt)

    async def _retry_on_conflict(self, consent_id: str, attempt_fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await attempt_fn()
            except ConcurrentModification:
                inc_write_conflicts()
                if attempt >= self.max_write_attempts:
                    log.warning("consent_write_conflict_gave_up", extra={"consent_id": consent_id, "attempt": attempt})
                    raise
                log.debug("consent_write_conflict", extra={"consent_id": consent_id, "attempt": attempt})
                attempt += 1

    @staticmethod
    def _record_rejection(previous: Consent, stored: Consent) -> None:
        if stored.rejection is None:
            return
        inc_consents_rejected(stored.rejection.rejected_by.value, stored.rejection.reason.value)
        log.info(
            "consent_rejected",
            extra={
                "consent_id": stored.id,
                "status": stored.status.value,
                "previous_status": previous.status.value,
                "rejected_by": stored.rejection.rejected_by.value,
                "reason": stored.rejection.reason.value,
            },
        )
