from __future__ import annotations
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Query, status

from consent_engine.cache.redis_client import get_redis
from consent_engine.core.clock import SystemClock
from consent_engine.core.config import settings
from consent_engine.domain.gating import ResourceGatingPolicy
from consent_engine.domain.permissions import default_catalog
from consent_engine.repositories.consents import ConsentStore, InMemoryConsentStore, SqlConsentStore
from consent_engine.services.authorization_policy import ConsentAuthorizationPolicy
from consent_engine.services.consent_service import ConsentService
from consent_engine.services.resource_service import ResourceService
from consent_engine.utils.idempotency import IdempotencyCache
from consent_engine.utils.pagination import Pagination


def build_store() -> ConsentStore:
    if settings.STORE_BACKEND == "memory":
        return InMemoryConsentStore()
    from consent_engine.db.session import get_sessionmaker
    return SqlConsentStore(get_sessionmaker())


def build_consent_service(store: ConsentStore | None = None, clock=None) -> ConsentService:
    return ConsentService(
        store or build_store(),
        clock or SystemClock(),
        default_catalog(),
        ResourceGatingPolicy(
            joint_account_subjects=frozenset(settings.JOINT_ACCOUNT_USER_IDENTIFIERS),
            grace=timedelta(seconds=settings.JOINT_ACCOUNT_GRACE_SECONDS),
        ),
        authorisation_window=timedelta(seconds=settings.CONSENT_AUTHORISATION_WINDOW_SECONDS),
        id_prefix=settings.CONSENT_ID_PREFIX,
        max_write_attempts=settings.STORE_MAX_WRITE_ATTEMPTS,
        revalidate_on_authorise=settings.REVALIDATE_PERMISSIONS_ON_AUTHORISE,
    )


# One engine per process
@lru_cache(maxsize=1)
def get_consent_service() -> ConsentService:
    return build_consent_service()


def get_authorization_policy(consents: ConsentService = Depends(get_consent_service)) -> ConsentAuthorizationPolicy:
    return ConsentAuthorizationPolicy(consents)


def get_resource_service(consents: ConsentService = Depends(get_consent_service)) -> ResourceService:
    return ResourceService(consents)


def get_idempotency_cache() -> IdempotencyCache | None:
    if not settings.IDEMPOTENCY_ENABLED:
        return None
    return IdempotencyCache(get_redis())


def pagination_params(
    page: Optional[int] = Query(None),
    page_size: Optional[int] = Query(None, alias="page-size"),
) -> Pagination:
    try:
        return Pagination.from_query(page, page_size)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_page_size")
