from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from consent_engine.domain.permissions import Permission


class ConsentStatus(str, Enum):
    AWAITING_AUTHORISATION = "AWAITING_AUTHORISATION"
    AUTHORISED = "AUTHORISED"
    REJECTED = "REJECTED"


class RejectedBy(str, Enum):
    USER = "USER"
    ASPSP = "ASPSP"
    TPP = "TPP"


class RejectionReason(str, Enum):
    CONSENT_EXPIRED = "CONSENT_EXPIRED"
    CUSTOMER_MANUALLY_REJECTED = "CUSTOMER_MANUALLY_REJECTED"
    CUSTOMER_MANUALLY_REVOKED = "CUSTOMER_MANUALLY_REVOKED"
    CONSENT_MAX_DATE_REACHED = "CONSENT_MAX_DATE_REACHED"
    CONSENT_TECHNICAL_ISSUE = "CONSENT_TECHNICAL_ISSUE"
    INTERNAL_SECURITY_REASON = "INTERNAL_SECURITY_REASON"


class ResourceType(str, Enum):
    ACCOUNT = "ACCOUNT"
    CREDIT_CARD_ACCOUNT = "CREDIT_CARD_ACCOUNT"
    LOAN = "LOAN"
    FINANCING = "FINANCING"
    UNARRANGED_ACCOUNT_OVERDRAFT = "UNARRANGED_ACCOUNT_OVERDRAFT"
    INVOICE_FINANCING = "INVOICE_FINANCING"
    BANK_FIXED_INCOME = "BANK_FIXED_INCOME"
    CREDIT_FIXED_INCOME = "CREDIT_FIXED_INCOME"
    VARIABLE_INCOME = "VARIABLE_INCOME"
    TREASURE_TITLE = "TREASURE_TITLE"
    FUND = "FUND"
    EXCHANGE = "EXCHANGE"


class ResourceStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"
    TEMPORARILY_UNAVAILABLE = "TEMPORARILY_UNAVAILABLE"
    PENDING_AUTHORISATION = "PENDING_AUTHORISATION"


class RejectionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    rejected_by: RejectedBy
    reason: RejectionReason


class Extension(BaseModel):
    """One change of a consent's expiration date. Never modified once recorded."""

    model_config = ConfigDict(frozen=True)

    expires_at: Optional[datetime] = None
    previous_expires_at: Optional[datetime] = None
    user_identifier: str
    business_identifier: Optional[str] = None
    requested_at: datetime
    user_ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ResourceBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ResourceType
    id: str


class Consent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: ConsentStatus
    user_identifier: str
    business_identifier: Optional[str] = None
    client_id: str
    permissions: List[Permission]
    created_at: datetime
    status_updated_at: datetime
    expires_at: Optional[datetime] = None
    rejection: Optional[RejectionInfo] = None
    # Most recent extension first.
    extensions: List[Extension] = Field(default_factory=list)
    resources: List[ResourceBinding] = Field(default_factory=list)
    version: int = 0

    @property
    def is_awaiting_authorisation(self) -> bool:
        return self.status == ConsentStatus.AWAITING_AUTHORISATION

    @property
    def is_authorised(self) -> bool:
        return self.status == ConsentStatus.AUTHORISED

    @property
    def is_rejected(self) -> bool:
        return self.status == ConsentStatus.REJECTED

    def has_permissions(self, permissions) -> bool:
        return set(permissions) <= set(self.permissions)

    def resource_ids(self, resource_type: ResourceType) -> List[str]:
        return [r.id for r in self.resources if r.type == resource_type]


class ConsentDraft(BaseModel):
    """What a client asks for when creating a consent."""

    client_id: str
    user_identifier: str
    business_identifier: Optional[str] = None
    permissions: List[str]
    expires_at: Optional[datetime] = None


class ExtensionRequest(BaseModel):
    # None asks for a consent without an end of validity.
    expires_at: Optional[datetime] = None
    user_identifier: str
    business_identifier: Optional[str] = None
    user_ip_address: Optional[str] = None
    user_agent: Optional[str] = None
