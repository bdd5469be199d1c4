from __future__ import annotations
import time
from typing import Any, Dict, List, Optional, Set
import httpx
import jwt
from fastapi import Depends, Header, HTTPException, status
from consent_engine.core.config import settings

CONSENT_SCOPE_PREFIX = "consent:"
AUTHORISER_ROLE = "consents:authorise"

_KID_CACHE: Dict[str, Dict[str, Any]] = {}
_KID_TTL = 300  # 5 minutes

# Simple in-process caches (per container)
_OIDC_CONF: Optional[Dict[str, Any]] = None
_OIDC_CONF_EXP: float = 0.0

async def _get_oidc_conf() -> Dict[str, Any]:
    global _OIDC_CONF, _OIDC_CONF_EXP
    now = time.time()
    if _OIDC_CONF and now < _OIDC_CONF_EXP:
        return _OIDC_CONF
    url = settings.KEYCLOAK_WELLKNOWN_URL or f"{settings.KEYCLOAK_ISSUER.rstrip('/')}/.well-known/openid-configuration"
    async with httpx.AsyncClient(timeout=5.0) as client:
        r = await client.get(url)
        if r.status_code != 200:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="oidc_config_unavailable")
        conf = r.json()
    _OIDC_CONF = conf
    _OIDC_CONF_EXP = now + 300
    return conf

async def _get_signing_key(token: str):
    kid = jwt.get_unverified_header(token).get("kid")

    now = time.time()
    if kid and kid in _KID_CACHE and _KID_CACHE[kid]["exp"] > now:
        return _KID_CACHE[kid]["key"]

    conf = await _get_oidc_conf()
    jwks_uri = conf.get("jwks_uri")
    if not jwks_uri:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="jwks_unavailable")

    key = jwt.PyJWKClient(jwks_uri).get_signing_key_from_jwt(token).key
    if kid:
        _KID_CACHE[kid] = {"key": key, "exp": now + _KID_TTL}
    return key

def collect_roles(payload: Dict[str, Any]) -> Set[str]:
    roles: Set[str] = set((payload.get("realm_access", {}) or {}).get("roles", []) or [])
    ra = payload.get("resource_access", {}) or {}
    aud = payload.get("aud")
    clients = list(aud) if isinstance(aud, list) else [aud]
    clients.append(payload.get("azp"))
    for c in clients:
        if isinstance(c, str):
            roles.update((ra.get(c, {}) or {}).get("roles", []) or [])
    return roles

def consent_id_from_scopes(scopes: List[str]) -> Optional[str]:
    """The consent a token was issued for travels as a `consent:<id>` scope."""
    for s in scopes:
        if s.startswith(CONSENT_SCOPE_PREFIX):
            return s[len(CONSENT_SCOPE_PREFIX):]
    return None

def caller_from_claims(payload: Dict[str, Any]) -> Dict[str, Any]:
    # azp is the most reliable client id, fall back to client_id/aud
    client_id = payload.get("azp") or (payload.get("client_id") if isinstance(payload.get("client_id"), str) else None)
    if not client_id:
        aud = payload.get("aud")
        if isinstance(aud, str):
            client_id = aud
        elif isinstance(aud, list) and aud:
            client_id = aud[0]
    if not client_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="client_id_missing")

    scopes = (payload.get("scope") or "").split()
    return {
        "client_id": client_id,
        "subject": payload.get("sub"),
        "scopes": scopes,
        "consent_id": consent_id_from_scopes(scopes),
        "roles": collect_roles(payload),
        "raw": payload,
    }

async def get_current_client(Authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if settings.SKIP_JWT:
        return {
            "client_id": "dev-bypass",
            "subject": None,
            "scopes": ["openid", "consents", "resources"],
            "consent_id": None,
            "roles": {AUTHORISER_ROLE},
            "raw": {},
        }

    if not Authorization or not Authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    token = Authorization.split(" ", 1)[1]

    try:
        key = await _get_signing_key(token)
        payload = jwt.decode(
            token,
            key=key,
            algorithms=["RS256", "PS256"],
            audience=settings.KEYCLOAK_AUDIENCE,
            issuer=settings.KEYCLOAK_ISSUER,
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token_expired")
    except jwt.InvalidAudienceError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_audience")
    except jwt.InvalidIssuerError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_issuer")
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    except httpx.HTTPError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="jwks_fetch_failed")

    return caller_from_claims(payload)

def require_scopes(*required: str):
    """Dependency: the token must carry every scope in `required`.
    The pseudo-scope "consent" means "some consent:<id> scope"."""
    async def _dep(client: Dict[str, Any] = Depends(get_current_client)) -> Dict[str, Any]:
        granted = set(client.get("scopes") or [])
        for scope in required:
            if scope == "consent":
                if not client.get("consent_id"):
                    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_scope")
            elif scope not in granted:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_scope")
        return client
    return _dep

def require_role(role: str):
    async def _dep(client: Dict[str, Any] = Depends(get_current_client)) -> Dict[str, Any]:
        if role not in (client.get("roles") or set()):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_permissions")
        return client
    return _dep
