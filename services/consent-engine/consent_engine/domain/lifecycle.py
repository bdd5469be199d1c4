"""Pure consent state transitions.

Nothing in here touches storage or the wall clock: every function takes the
current time as an argument and returns a new Consent value. The service layer
decides what gets persisted.
"""
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from consent_engine.domain.consent import (
    Consent,
    ConsentStatus,
    Extension,
    ExtensionRequest,
    RejectedBy,
    RejectionInfo,
    RejectionReason,
    ResourceBinding,
)
from consent_engine.domain.errors import (
    AlreadyRejected,
    ConsentNotAuthorisedForExtension,
    ExtensionNotAllowed,
    ExtensionNotAllowedJointAccount,
    InvalidExpiration,
    InvalidPermission,
    InvalidPermissionCombination,
    InvalidStatusTransition,
)
from consent_engine.domain.permissions import Permission, PermissionCatalog, validate_permissions

AUTHORISATION_WINDOW = timedelta(hours=1)
MAX_VALIDITY_YEARS = 1


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 rolls over to Mar 1 on non-leap years.
        return moment.replace(year=moment.year + years, month=3, day=1)


def validate_expiration(expires_at: datetime, now: datetime) -> None:
    if expires_at < now or expires_at > add_years(now, MAX_VALIDITY_YEARS):
        raise InvalidExpiration()


def validate_new_consent(
    permissions: Sequence[Permission],
    expires_at: Optional[datetime],
    now: datetime,
    catalog: PermissionCatalog,
) -> None:
    validate_permissions(permissions, catalog)
    if expires_at is not None:
        validate_expiration(expires_at, now)


def normalize(consent: Consent, now: datetime, authorisation_window: timedelta = AUTHORISATION_WINDOW) -> Consent:
    """Return the consent as it should look at ``now``.

    An awaiting consent older than the authorisation window and an authorised
    consent past its expiration are both moved to REJECTED. Anything else is
    returned unchanged (the same object).
    """
    if consent.is_awaiting_authorisation and now > consent.created_at + authorisation_window:
        info = RejectionInfo(rejected_by=RejectedBy.USER, reason=RejectionReason.CONSENT_EXPIRED)
        return with_rejection(consent, info, now)

    if consent.is_authorised and consent.expires_at is not None and now > consent.expires_at:
        info = RejectionInfo(rejected_by=RejectedBy.ASPSP, reason=RejectionReason.CONSENT_MAX_DATE_REACHED)
        return with_rejection(consent, info, now)

    return consent


def with_rejection(consent: Consent, info: RejectionInfo, now: datetime) -> Consent:
    return consent.model_copy(
        update={"status": ConsentStatus.REJECTED, "rejection": info, "status_updated_at": now}
    )


def reject(consent: Consent, info: RejectionInfo, now: datetime) -> Consent:
    if consent.is_rejected:
        raise AlreadyRejected()
    return with_rejection(consent, info, now)


def revocation_info(consent: Consent) -> RejectionInfo:
    reason = RejectionReason.CUSTOMER_MANUALLY_REJECTED
    if consent.is_authorised:
        reason = RejectionReason.CUSTOMER_MANUALLY_REVOKED
    return RejectionInfo(rejected_by=RejectedBy.USER, reason=reason)


def authorise(
    consent: Consent,
    now: datetime,
    granted: Optional[Sequence[Permission]] = None,
    resources: Iterable[ResourceBinding] = (),
    catalog: Optional[PermissionCatalog] = None,
) -> Consent:
    """Move an awaiting consent to AUTHORISED.

    ``granted`` may narrow the requested permissions but never add to them.
    When a catalog is passed the narrowed set is checked against the group
    rules again.
    """
    if not consent.is_awaiting_authorisation:
        raise InvalidStatusTransition(
            f"cannot authorise a consent in status {consent.status.value}"
        )

    permissions = list(consent.permissions)
    if granted is not None:
        extra = [p for p in granted if p not in consent.permissions]
        if extra:
            raise InvalidPermission(
                "permissions not requested by the client: " + ", ".join(p.value for p in extra)
            )
        if not granted:
            raise InvalidPermissionCombination("at least one permission must be granted")
        # Keep the requested declaration order.
        permissions = [p for p in consent.permissions if p in granted]
        if catalog is not None:
            validate_permissions(permissions, catalog)

    return consent.model_copy(
        update={
            "status": ConsentStatus.AUTHORISED,
            "status_updated_at": now,
            "permissions": permissions,
            "resources": list(consent.resources) + [r for r in resources if r not in consent.resources],
        }
    )


def validate_extension(
    consent: Consent,
    request: ExtensionRequest,
    now: datetime,
    is_joint_account_subject: bool = False,
) -> None:
    if not consent.is_authorised:
        raise ConsentNotAuthorisedForExtension()

    if consent.user_identifier != request.user_identifier:
        raise ExtensionNotAllowed("the logged user does not match the consent")
    if consent.business_identifier and consent.business_identifier != request.business_identifier:
        raise ExtensionNotAllowed("the business entity does not match the consent")

    if is_joint_account_subject:
        raise ExtensionNotAllowedJointAccount()

    if request.expires_at is None:
        return

    validate_expiration(request.expires_at, now)
    if consent.expires_at is not None and request.expires_at <= consent.expires_at:
        raise InvalidExpiration("the new expiration must be later than the current one")


def extend(consent: Consent, request: ExtensionRequest, now: datetime) -> Consent:
    extension = Extension(
        expires_at=request.expires_at,
        previous_expires_at=consent.expires_at,
        user_identifier=request.user_identifier,
        business_identifier=request.business_identifier,
        requested_at=now,
        user_ip_address=request.user_ip_address,
        user_agent=request.user_agent,
    )
    return consent.model_copy(
        update={
            "expires_at": request.expires_at,
            "extensions": [extension] + list(consent.extensions),
        }
    )
