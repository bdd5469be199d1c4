from __future__ import annotations
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from redis.asyncio import Redis

log = logging.getLogger(__name__)

IDEMPOTENCY_TTL_SECONDS = 24 * 60 * 60  # 24h
_LOCK_TTL_SECONDS = 60                  # claim held while the consent is being created


class IdempotencyConflict(Exception):
    """Same Idempotency-Key reused with a different request body."""


@dataclass
class Replay:
    response: Dict[str, Any]
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)


def canonical_sha256(data: Dict[str, Any]) -> str:
    # Stable JSON, so the same logical payload always hashes the same
    s = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


class IdempotencyCache:
    """Redis-backed replay cache for consent creation, scoped per client.

    Redis being unavailable never fails the request: every call logs a warning
    and the request proceeds without idempotency guarantees.
    """

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    @staticmethod
    def _key(client_id: str, idem_key: str) -> str:
        return f"idem:consents:{client_id}:{idem_key}"

    async def _read(self, client_id: str, idem_key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.redis.get(self._key(client_id, idem_key))
        except Exception as e:
            log.warning("idempotency_read_failed (continuing): %s", e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    async def begin(self, client_id: str, idem_key: str, body_sha: str) -> Optional[Replay]:
        """Return a Replay for an exact repeat, raise IdempotencyConflict for a
        different body under the same key, or claim the key and return None."""
        existing = await self._read(client_id, idem_key)
        if existing:
            if existing.get("body_sha256") != body_sha:
                raise IdempotencyConflict()
            if existing.get("state") == "FINAL":
                return Replay(existing["response"], existing.get("status_code", 201), existing.get("headers", {}))

        try:
            value = json.dumps({"state": "LOCK", "body_sha256": body_sha})
            await self.redis.set(self._key(client_id, idem_key), value, nx=True, ex=_LOCK_TTL_SECONDS)
        except Exception as e:
            log.warning("idempotency_lock_failed (continuing): %s", e)
        return None

    async def complete(
        self,
        client_id: str,
        idem_key: str,
        body_sha: str,
        response: Dict[str, Any],
        status_code: int,
        headers: Dict[str, str],
    ) -> None:
        value = json.dumps({
            "state": "FINAL",
            "body_sha256": body_sha,
            "response": response,
            "status_code": status_code,
            "headers": headers,
        })
        try:
            await self.redis.set(self._key(client_id, idem_key), value, ex=IDEMPOTENCY_TTL_SECONDS)
        except Exception as e:
            log.warning("idempotency_store_failed (continuing): %s", e)
