from __future__ import annotations
import asyncio
from typing import Callable, Dict, Optional, Protocol

from anyio import to_thread
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from consent_engine.domain.consent import Consent
from consent_engine.domain.errors import ConcurrentModification, StoreError
from consent_engine.models.consent import ConsentRow


class ConsentStore(Protocol):
    """Key-addressable consent persistence.

    ``put`` is a compare-and-swap on ``Consent.version``: version 0 means the
    consent must not exist yet, any other value must match what is stored.
    The stored copy (with its version bumped) is returned. A mismatch raises
    ConcurrentModification.
    """

    async def get(self, consent_id: str) -> Optional[Consent]: ...

    async def put(self, consent: Consent) -> Consent: ...


def _next_version(consent: Consent) -> Consent:
    return consent.model_copy(update={"version": consent.version + 1})


class InMemoryConsentStore:
    def __init__(self) -> None:
        # Serialized documents, so callers never share mutable state with the store
        self._documents: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, consent_id: str) -> Optional[Consent]:
        raw = self._documents.get(consent_id)
        if raw is None:
            return None
        return Consent.model_validate_json(raw)

    async def put(self, consent: Consent) -> Consent:
        async with self._lock:
            raw = self._documents.get(consent.id)
            current = Consent.model_validate_json(raw).version if raw is not None else 0
            if current != consent.version:
                raise ConcurrentModification(consent.id)
            stored = _next_version(consent)
            self._documents[consent.id] = stored.model_dump_json()
            return stored


def _row_values(consent: Consent) -> dict:
    return {
        "client_id": consent.client_id,
        "user_identifier": consent.user_identifier,
        "status": consent.status.value,
        "expires_at": consent.expires_at,
        "created_at": consent.created_at,
        "updated_at": consent.status_updated_at,
        "document": consent.model_dump(mode="json", exclude={"version"}),
        "version": consent.version,
    }


def _to_consent(row: ConsentRow) -> Consent:
    return Consent.model_validate({**row.document, "version": row.version})


class SqlConsentStore:
    """SQLAlchemy-backed store. Blocking session work runs in a worker thread."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def get(self, consent_id: str) -> Optional[Consent]:
        return await to_thread.run_sync(self._get, consent_id)

    async def put(self, consent: Consent) -> Consent:
        return await to_thread.run_sync(self._put, consent)

    def _get(self, consent_id: str) -> Optional[Consent]:
        try:
            with self._session_factory() as db:
                row = db.get(ConsentRow, consent_id)
                return _to_consent(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"failed to load consent {consent_id}") from e

    def _put(self, consent: Consent) -> Consent:
        stored = _next_version(consent)
        values = _row_values(stored)
        with self._session_factory() as db:
            try:
                if consent.version == 0:
                    db.add(ConsentRow(id=consent.id, **values))
                    db.commit()
                    return stored

                stmt = (
                    update(ConsentRow)
                    .where(ConsentRow.id == consent.id)
                    .where(ConsentRow.version == consent.version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                res = db.execute(stmt)
                if res.rowcount != 1:
                    db.rollback()
                    raise ConcurrentModification(consent.id)
                db.commit()
                return stored
            except IntegrityError as e:
                db.rollback()
                raise ConcurrentModification(consent.id) from e
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"failed to save consent {consent.id}") from e
