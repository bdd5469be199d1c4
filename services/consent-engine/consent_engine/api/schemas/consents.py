from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from consent_engine.domain.consent import (
    Consent,
    ConsentStatus,
    Extension,
    RejectedBy,
    RejectionReason,
    ResourceType,
)
from consent_engine.utils.pagination import Page

CONSENTS_PATH = "/open-banking/consents/v3/consents"
RESOURCES_PATH = "/open-banking/resources/v3/resources"

USER_DOCUMENT_REL = "CPF"
BUSINESS_DOCUMENT_REL = "CNPJ"


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Document(_Camel):
    identification: str
    rel: str = Field(default=USER_DOCUMENT_REL)


class Entity(_Camel):
    document: Document


class BusinessDocument(Document):
    rel: str = Field(default=BUSINESS_DOCUMENT_REL)


class BusinessEntity(_Camel):
    document: BusinessDocument


class Links(_Camel):
    self: str
    first: Optional[str] = None
    prev: Optional[str] = None
    next: Optional[str] = None
    last: Optional[str] = None


class Meta(_Camel):
    total_records: int = Field(default=1, alias="totalRecords")
    total_pages: int = Field(default=1, alias="totalPages")
    request_date_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="requestDateTime")


# --- requests ---

class ConsentCreateData(_Camel):
    logged_user: Entity = Field(alias="loggedUser")
    business_entity: Optional[BusinessEntity] = Field(default=None, alias="businessEntity")
    permissions: List[str] = Field(min_length=1)
    expiration_date_time: Optional[datetime] = Field(default=None, alias="expirationDateTime")


class ConsentCreateRequest(_Camel):
    data: ConsentCreateData


class ConsentExtendData(_Camel):
    expiration_date_time: Optional[datetime] = Field(default=None, alias="expirationDateTime")
    logged_user: Entity = Field(alias="loggedUser")
    business_entity: Optional[BusinessEntity] = Field(default=None, alias="businessEntity")


class ConsentExtendRequest(_Camel):
    data: ConsentExtendData


class ResourceBindingIn(_Camel):
    type: ResourceType
    id: str


class ConsentAuthoriseRequest(_Camel):
    # Authenticated customer (CPF) who approved the consent on the login page
    subject: str
    permissions: Optional[List[str]] = None
    resources: List[ResourceBindingIn] = Field(default_factory=list)


class ConsentRejectRequest(_Camel):
    rejected_by: RejectedBy = Field(alias="rejectedBy")
    reason: RejectionReason


# --- responses ---

class RejectionReasonOut(_Camel):
    code: RejectionReason


class RejectionOut(_Camel):
    rejected_by: RejectedBy = Field(alias="rejectedBy")
    reason: RejectionReasonOut


class ConsentData(_Camel):
    consent_id: str = Field(alias="consentId")
    status: ConsentStatus
    permissions: List[str]
    creation_date_time: datetime = Field(alias="creationDateTime")
    status_update_date_time: datetime = Field(alias="statusUpdateDateTime")
    expiration_date_time: Optional[datetime] = Field(default=None, alias="expirationDateTime")
    rejection: Optional[RejectionOut] = None


class ConsentResponse(_Camel):
    data: ConsentData
    links: Links
    meta: Meta


class ExtensionData(_Camel):
    expiration_date_time: Optional[datetime] = Field(default=None, alias="expirationDateTime")
    previous_expiration_date_time: Optional[datetime] = Field(default=None, alias="previousExpirationDateTime")
    logged_user: Entity = Field(alias="loggedUser")
    request_date_time: datetime = Field(alias="requestDateTime")
    customer_ip_address: Optional[str] = Field(default=None, alias="xFapiCustomerIpAddress")
    customer_user_agent: Optional[str] = Field(default=None, alias="xCustomerUserAgent")


class ExtensionsResponse(_Camel):
    data: List[ExtensionData]
    links: Links
    meta: Meta


def consent_response(consent: Consent, self_url: str) -> ConsentResponse:
    rejection = None
    if consent.rejection is not None:
        rejection = RejectionOut(
            rejected_by=consent.rejection.rejected_by,
            reason=RejectionReasonOut(code=consent.rejection.reason),
        )
    return ConsentResponse(
        data=ConsentData(
            consent_id=consent.id,
            status=consent.status,
            permissions=[p.value for p in consent.permissions],
            creation_date_time=consent.created_at,
            status_update_date_time=consent.status_updated_at,
            expiration_date_time=consent.expires_at,
            rejection=rejection,
        ),
        links=Links(self=self_url),
        meta=Meta(),
    )


def paginated_links(self_url: str, page: Page) -> Links:
    def _url(number: int) -> str:
        return f"{self_url}?page={number}&page-size={page.size}"

    links = Links(self=_url(page.number))
    if page.total_pages > 1:
        links.first = _url(1)
        links.last = _url(page.total_pages)
        if page.number > 1:
            links.prev = _url(page.number - 1)
        if page.number < page.total_pages:
            links.next = _url(page.number + 1)
    return links


def extensions_response(page: Page[Extension], self_url: str) -> ExtensionsResponse:
    return ExtensionsResponse(
        data=[
            ExtensionData(
                expiration_date_time=ext.expires_at,
                previous_expiration_date_time=ext.previous_expires_at,
                logged_user=Entity(document=Document(identification=ext.user_identifier)),
                request_date_time=ext.requested_at,
                customer_ip_address=ext.user_ip_address,
                customer_user_agent=ext.user_agent,
            )
            for ext in page.records
        ],
        links=paginated_links(self_url, page),
        meta=Meta(total_records=page.total_records, total_pages=page.total_pages),
    )


def consent_url(base_url: str, consent_id: str, suffix: str = "") -> str:
    return f"{base_url.rstrip('/')}{CONSENTS_PATH}/{consent_id}{suffix}"
