from datetime import timedelta

from consent_engine.domain.consent import (
    Consent,
    ConsentStatus,
    Extension,
    RejectedBy,
    RejectionInfo,
    RejectionReason,
    ResourceBinding,
    ResourceType,
)
from consent_engine.domain.permissions import Permission

from conftest import T0, USER


def test_consent_with_history_round_trips_through_json():
    consent = Consent(
        id="urn:mockbank:8a1f",
        status=ConsentStatus.REJECTED,
        user_identifier=USER,
        business_identifier="50685362006773",
        client_id="tpp-client",
        permissions=[Permission.ACCOUNTS_READ, Permission.ACCOUNTS_BALANCES_READ, Permission.RESOURCES_READ],
        created_at=T0,
        status_updated_at=T0 + timedelta(days=3),
        expires_at=None,
        rejection=RejectionInfo(rejected_by=RejectedBy.USER, reason=RejectionReason.CUSTOMER_MANUALLY_REVOKED),
        extensions=[
            Extension(
                expires_at=None,
                previous_expires_at=T0 + timedelta(days=120),
                user_identifier=USER,
                requested_at=T0 + timedelta(days=2),
            ),
            Extension(
                expires_at=T0 + timedelta(days=120),
                previous_expires_at=T0 + timedelta(days=90),
                user_identifier=USER,
                requested_at=T0 + timedelta(days=1),
                user_ip_address="10.0.0.1",
                user_agent="mobile-app/1.0",
            ),
        ],
        resources=[ResourceBinding(type=ResourceType.ACCOUNT, id="acc-1")],
        version=7,
    )

    restored = Consent.model_validate_json(consent.model_dump_json())

    assert restored == consent
    assert restored.extensions[0].expires_at is None
    assert restored.created_at.utcoffset() == timedelta(0)
