"""HTTP surface: routing, status codes, error payloads, headers."""

from datetime import timedelta

import pytest

from consent_engine.api.deps import get_idempotency_cache
from consent_engine.main import app
from consent_engine.utils.idempotency import IdempotencyCache

from conftest import ACCOUNT_PERMISSIONS, JOINT_USER, T0, USER
from test_idempotency import FakeRedis

CONSENTS = "/open-banking/consents/v3/consents"
RESOURCES = "/open-banking/resources/v3/resources"

EXTEND_HEADERS = {
    "x-fapi-customer-ip-address": "10.0.0.1",
    "x-customer-user-agent": "mobile-app/1.0",
}


def _create_body(permissions=None, user=USER, expires_at=T0 + timedelta(days=90)):
    data = {
        "loggedUser": {"document": {"identification": user, "rel": "CPF"}},
        "permissions": permissions or list(ACCOUNT_PERMISSIONS),
    }
    if expires_at is not None:
        data["expirationDateTime"] = expires_at.isoformat()
    return {"data": data}


def _extend_body(expires_at, user=USER):
    data = {"loggedUser": {"document": {"identification": user, "rel": "CPF"}}}
    if expires_at is not None:
        data["expirationDateTime"] = expires_at.isoformat()
    return {"data": data}


async def _create(client, **kwargs) -> str:
    resp = await client.post(CONSENTS, json=_create_body(**kwargs))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["consentId"]


async def _authorise(client, consent_id, user=USER, **extra):
    body = {"subject": user, **extra}
    return await client.post(f"{CONSENTS}/{consent_id}/authorise", json=body)


@pytest.mark.asyncio
async def test_create_consent(client):
    resp = await client.post(CONSENTS, json=_create_body())

    assert resp.status_code == 201
    body = resp.json()
    consent_id = body["data"]["consentId"]
    assert consent_id.startswith("urn:mockbank:")
    assert body["data"]["status"] == "AWAITING_AUTHORISATION"
    assert body["data"]["permissions"] == ACCOUNT_PERMISSIONS
    assert "rejection" not in body["data"]
    assert resp.headers["Location"] == f"http://test{CONSENTS}/{consent_id}"
    assert body["links"]["self"] == resp.headers["Location"]
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    resp = await client.get(f"{CONSENTS}/urn:mockbank:missing", headers={"X-Request-ID": "req-123"})

    assert resp.status_code == 404
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.json()["error"]["code"] == "NOT_FOUND"
    assert resp.json()["error"]["correlation_id"] == "req-123"


@pytest.mark.asyncio
async def test_partial_group_maps_to_open_finance_code(client):
    resp = await client.post(CONSENTS, json=_create_body(permissions=["ACCOUNTS_BALANCES_READ"]))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "COMBINACAO_PERMISSOES_INCORRETA"


@pytest.mark.asyncio
async def test_unknown_permission_is_a_bad_request(client):
    resp = await client.post(CONSENTS, json=_create_body(permissions=["PAYMENTS_INITIATE"]))

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_PERMISSION"


@pytest.mark.asyncio
async def test_personal_with_business_is_refused(client):
    permissions = ["CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ", "CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ", "RESOURCES_READ"]
    resp = await client.post(CONSENTS, json=_create_body(permissions=permissions))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "PERMISSAO_PF_PJ_EM_CONJUNTO"


@pytest.mark.asyncio
async def test_invalid_expiration_is_refused(client):
    resp = await client.post(CONSENTS, json=_create_body(expires_at=T0 - timedelta(days=1)))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "DATA_EXPIRACAO_INVALIDA"


@pytest.mark.asyncio
async def test_empty_permission_list_fails_validation(client):
    body = _create_body()
    body["data"]["permissions"] = []
    resp = await client.post(CONSENTS, json=body)

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_missing_scope_is_forbidden(client, caller):
    caller["scopes"] = ["openid"]
    resp = await client.post(CONSENTS, json=_create_body())

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "insufficient_scope"


@pytest.mark.asyncio
async def test_get_consent_times_out_after_an_hour(client, clock):
    consent_id = await _create(client)
    clock.advance(minutes=61)

    resp = await client.get(f"{CONSENTS}/{consent_id}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "REJECTED"
    assert data["rejection"] == {"rejectedBy": "USER", "reason": {"code": "CONSENT_EXPIRED"}}


@pytest.mark.asyncio
async def test_consent_of_another_client_is_forbidden(client, caller):
    consent_id = await _create(client)
    caller["client_id"] = "another-client"

    resp = await client.get(f"{CONSENTS}/{consent_id}")

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_authorise_requires_role(client, caller):
    consent_id = await _create(client)
    caller["roles"] = set()

    resp = await _authorise(client, consent_id)

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "insufficient_permissions"


@pytest.mark.asyncio
async def test_authorise_for_another_customer_is_forbidden(client):
    consent_id = await _create(client)

    resp = await _authorise(client, consent_id, user="00000000000")

    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_authorise_twice_conflicts(client):
    consent_id = await _create(client)
    assert (await _authorise(client, consent_id)).status_code == 200

    resp = await _authorise(client, consent_id)

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_reject_twice(client):
    consent_id = await _create(client)
    body = {"rejectedBy": "TPP", "reason": "CONSENT_TECHNICAL_ISSUE"}

    first = await client.post(f"{CONSENTS}/{consent_id}/reject", json=body)
    assert first.status_code == 200
    assert first.json()["data"]["rejection"]["rejectedBy"] == "TPP"

    second = await client.post(f"{CONSENTS}/{consent_id}/reject", json=body)
    assert second.status_code == 422
    assert second.json()["error"]["code"] == "CONSENTIMENTO_EM_STATUS_REJEITADO"


@pytest.mark.asyncio
async def test_delete_revokes(client):
    consent_id = await _create(client)
    await _authorise(client, consent_id)

    resp = await client.delete(f"{CONSENTS}/{consent_id}")
    assert resp.status_code == 204

    data = (await client.get(f"{CONSENTS}/{consent_id}")).json()["data"]
    assert data["status"] == "REJECTED"
    assert data["rejection"]["reason"]["code"] == "CUSTOMER_MANUALLY_REVOKED"

    again = await client.delete(f"{CONSENTS}/{consent_id}")
    assert again.status_code == 422


@pytest.mark.asyncio
async def test_resources_listing(client, caller):
    consent_id = await _create(client)
    await _authorise(client, consent_id, resources=[{"type": "ACCOUNT", "id": "acc-1"}, {"type": "LOAN", "id": "loan-1"}])
    caller["consent_id"] = consent_id

    resp = await client.get(RESOURCES)

    assert resp.status_code == 200
    body = resp.json()
    assert body["data"] == [
        {"resourceId": "acc-1", "type": "ACCOUNT", "status": "AVAILABLE"},
        {"resourceId": "loan-1", "type": "LOAN", "status": "AVAILABLE"},
    ]
    assert body["meta"]["totalRecords"] == 2


@pytest.mark.asyncio
async def test_joint_account_resources_start_pending(client, caller, clock):
    consent_id = await _create(client, user=JOINT_USER)
    await _authorise(client, consent_id, user=JOINT_USER, resources=[{"type": "ACCOUNT", "id": "acc-1"}])
    caller["consent_id"] = consent_id

    pending = (await client.get(RESOURCES)).json()["data"]
    assert pending[0]["status"] == "PENDING_AUTHORISATION"

    clock.advance(seconds=31)
    available = (await client.get(RESOURCES)).json()["data"]
    assert available[0]["status"] == "AVAILABLE"


@pytest.mark.asyncio
async def test_resources_need_authorised_consent(client, caller):
    consent_id = await _create(client)
    caller["consent_id"] = consent_id

    resp = await client.get(RESOURCES)

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_resources_need_consent_bound_token(client):
    resp = await client.get(RESOURCES)

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "insufficient_scope"


@pytest.mark.asyncio
async def test_extend_and_list_extensions(client, caller, clock):
    consent_id = await _create(client)
    await _authorise(client, consent_id)
    caller["consent_id"] = consent_id

    clock.advance(days=1)
    first = await client.post(
        f"{CONSENTS}/{consent_id}/extends", json=_extend_body(T0 + timedelta(days=120)), headers=EXTEND_HEADERS
    )
    assert first.status_code == 201, first.text
    second = await client.post(f"{CONSENTS}/{consent_id}/extends", json=_extend_body(None), headers=EXTEND_HEADERS)
    assert second.status_code == 201
    assert "expirationDateTime" not in second.json()["data"]

    resp = await client.get(f"{CONSENTS}/{consent_id}/extensions", params={"page-size": 1})

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]) == 1
    assert body["meta"]["totalRecords"] == 2
    assert body["meta"]["totalPages"] == 2
    assert "expirationDateTime" not in body["data"][0]
    assert body["data"][0]["xFapiCustomerIpAddress"] == "10.0.0.1"
    assert body["links"]["next"].endswith("page=2&page-size=1")


@pytest.mark.asyncio
async def test_extend_requires_matching_token_consent(client, caller):
    consent_id = await _create(client)
    await _authorise(client, consent_id)
    caller["consent_id"] = "urn:mockbank:other"

    resp = await client.post(
        f"{CONSENTS}/{consent_id}/extends", json=_extend_body(T0 + timedelta(days=120)), headers=EXTEND_HEADERS
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_request"


@pytest.mark.asyncio
async def test_extend_awaiting_consent_is_refused(client, caller):
    consent_id = await _create(client)
    caller["consent_id"] = consent_id

    resp = await client.post(
        f"{CONSENTS}/{consent_id}/extends", json=_extend_body(T0 + timedelta(days=120)), headers=EXTEND_HEADERS
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "ESTADO_CONSENTIMENTO_INVALIDO"


@pytest.mark.asyncio
async def test_extend_joint_account_is_refused(client, caller):
    consent_id = await _create(client, user=JOINT_USER)
    await _authorise(client, consent_id, user=JOINT_USER)
    caller["consent_id"] = consent_id

    resp = await client.post(
        f"{CONSENTS}/{consent_id}/extends",
        json=_extend_body(T0 + timedelta(days=120), user=JOINT_USER),
        headers=EXTEND_HEADERS,
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "DEPENDE_MULTIPLA_ALCADA"


@pytest.mark.asyncio
async def test_page_size_above_limit_is_refused(client):
    consent_id = await _create(client)

    resp = await client.get(f"{CONSENTS}/{consent_id}/extensions", params={"page-size": 2000})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "invalid_page_size"


@pytest.mark.asyncio
async def test_create_with_idempotency_key_replays(client):
    cache = IdempotencyCache(FakeRedis())
    app.dependency_overrides[get_idempotency_cache] = lambda: cache
    headers = {"Idempotency-Key": "key-1"}

    first = await client.post(CONSENTS, json=_create_body(), headers=headers)
    replay = await client.post(CONSENTS, json=_create_body(), headers=headers)
    conflict = await client.post(CONSENTS, json=_create_body(expires_at=None), headers=headers)

    assert first.status_code == 201
    assert replay.status_code == 200
    assert replay.headers["Idempotency-Replayed"] == "true"
    assert replay.json()["data"]["consentId"] == first.json()["data"]["consentId"]
    assert replay.headers["Location"] == first.headers["Location"]
    assert conflict.status_code == 409
    assert conflict.json()["error"]["code"] == "idempotency_conflict"


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}
