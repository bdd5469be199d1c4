from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet

from consent_engine.domain.consent import Consent, ResourceStatus, ResourceType

JOINT_ACCOUNT_GRACE = timedelta(seconds=30)


def joint_account_pending(
    is_joint_account_subject: bool,
    created_at: datetime,
    now: datetime,
    grace: timedelta = JOINT_ACCOUNT_GRACE,
) -> bool:
    """True while a joint account still waits for the co-holders' approval."""
    return is_joint_account_subject and now < created_at + grace


@dataclass(frozen=True)
class ResourceGatingPolicy:
    joint_account_subjects: FrozenSet[str] = field(default_factory=frozenset)
    grace: timedelta = JOINT_ACCOUNT_GRACE

    def is_joint_account_subject(self, user_identifier: str) -> bool:
        return user_identifier in self.joint_account_subjects

    def is_visible(self, consent: Consent, resource_type: ResourceType, now: datetime) -> bool:
        if resource_type != ResourceType.ACCOUNT:
            return True
        return not joint_account_pending(
            self.is_joint_account_subject(consent.user_identifier),
            consent.created_at,
            now,
            self.grace,
        )

    def status_of(self, consent: Consent, resource_type: ResourceType, now: datetime) -> ResourceStatus:
        if self.is_visible(consent, resource_type, now):
            return ResourceStatus.AVAILABLE
        return ResourceStatus.PENDING_AUTHORISATION
