import pytest
from fastapi import HTTPException

from consent_engine.security.jwt import caller_from_claims, collect_roles, consent_id_from_scopes


def test_consent_id_comes_from_scope():
    assert consent_id_from_scopes(["openid", "consent:urn:mockbank:abc"]) == "urn:mockbank:abc"
    assert consent_id_from_scopes(["openid", "accounts"]) is None


def test_roles_are_collected_from_realm_and_client():
    payload = {
        "azp": "login-app",
        "realm_access": {"roles": ["offline_access"]},
        "resource_access": {"login-app": {"roles": ["consents:authorise"]}, "other": {"roles": ["admin"]}},
    }
    assert collect_roles(payload) == {"offline_access", "consents:authorise"}


def test_caller_from_claims():
    caller = caller_from_claims({"azp": "tpp-client", "sub": "u-1", "scope": "openid consent:urn:mockbank:abc"})

    assert caller["client_id"] == "tpp-client"
    assert caller["consent_id"] == "urn:mockbank:abc"
    assert caller["scopes"] == ["openid", "consent:urn:mockbank:abc"]


def test_client_id_falls_back_to_audience():
    assert caller_from_claims({"aud": ["tpp-client", "account"]})["client_id"] == "tpp-client"


def test_token_without_client_is_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        caller_from_claims({"sub": "u-1"})
    assert exc_info.value.status_code == 401
