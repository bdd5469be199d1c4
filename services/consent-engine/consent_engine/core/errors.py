from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Tuple, Type
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi import status as http
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from consent_engine.core.correlation import get_correlation_id
from consent_engine.domain import errors as domain

log = logging.getLogger(__name__)

# Short string details raised through HTTPException -> human messages
_MESSAGES = {
    "invalid_token": "The access token is invalid.",
    "token_expired": "The access token has expired.",
    "invalid_audience": "The token audience is not accepted.",
    "invalid_issuer": "The token issuer is not accepted.",
    "insufficient_scope": "The access token does not carry the required scopes.",
    "insufficient_permissions": "You do not have permission to perform this action.",
    "forbidden": "You do not have permission to perform this action.",
    "not_found": "The requested resource was not found.",
    "idempotency_conflict": "The Idempotency-Key conflicts with a prior request.",
    "invalid_request": "The request is invalid.",
    "invalid_page_size": "The requested page size is invalid.",
}

# Domain error class -> (HTTP status, Open Finance error code). Looked up along the MRO,
# so subclasses without an entry inherit their parent's mapping.
_CONSENT_ERRORS: Dict[Type[Exception], Tuple[int, str]] = {
    domain.ConsentNotFound: (http.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    domain.AccessDenied: (http.HTTP_403_FORBIDDEN, "FORBIDDEN"),
    domain.ConsentNotAuthorised: (http.HTTP_401_UNAUTHORIZED, "INVALID_STATUS"),
    domain.InvalidStatusTransition: (http.HTTP_409_CONFLICT, "INVALID_STATUS"),
    domain.AlreadyRejected: (http.HTTP_422_UNPROCESSABLE_ENTITY, "CONSENTIMENTO_EM_STATUS_REJEITADO"),
    domain.ConsentNotAuthorisedForExtension: (http.HTTP_422_UNPROCESSABLE_ENTITY, "ESTADO_CONSENTIMENTO_INVALIDO"),
    domain.ExtensionNotAllowed: (http.HTTP_403_FORBIDDEN, "FORBIDDEN"),
    domain.ExtensionNotAllowedJointAccount: (http.HTTP_422_UNPROCESSABLE_ENTITY, "DEPENDE_MULTIPLA_ALCADA"),
    domain.InvalidExpiration: (http.HTTP_422_UNPROCESSABLE_ENTITY, "DATA_EXPIRACAO_INVALIDA"),
    domain.InvalidPermission: (http.HTTP_400_BAD_REQUEST, "INVALID_PERMISSION"),
    domain.InvalidPermissionCombination: (http.HTTP_422_UNPROCESSABLE_ENTITY, "COMBINACAO_PERMISSOES_INCORRETA"),
    domain.PersonalBusinessConflict: (http.HTTP_422_UNPROCESSABLE_ENTITY, "PERMISSAO_PF_PJ_EM_CONJUNTO"),
}

def _normalize_detail(detail: Any) -> str:
    if isinstance(detail, dict) and "detail" in detail:
        return str(detail["detail"])
    return str(detail)

def _build_error(code: str, status_code: int, message: Optional[str] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "http_status": status_code,
            "message": message or _MESSAGES.get(code, code),
            "correlation_id": get_correlation_id(),
        }
    }

def consent_error_mapping(exc: domain.ConsentError) -> Tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in _CONSENT_ERRORS:
            return _CONSENT_ERRORS[cls]
    return http.HTTP_400_BAD_REQUEST, exc.code

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _normalize_detail(exc.detail)
    payload = _build_error(code, exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    payload = {
        "error": {
            "code": "validation_error",
            "http_status": http.HTTP_422_UNPROCESSABLE_ENTITY,
            "message": "One or more fields failed validation.",
            "correlation_id": get_correlation_id(),
            "details": exc.errors(),
        }
    }
    return JSONResponse(status_code=http.HTTP_422_UNPROCESSABLE_ENTITY, content=payload)

async def consent_exception_handler(request: Request, exc: domain.ConsentError):
    status_code, code = consent_error_mapping(exc)
    return JSONResponse(status_code=status_code, content=_build_error(code, status_code, exc.message))

async def store_exception_handler(request: Request, exc: domain.StoreError):
    if isinstance(exc, domain.ConcurrentModification):
        payload = _build_error(
            "CONCURRENT_MODIFICATION",
            http.HTTP_409_CONFLICT,
            "The consent was modified by another request, retry the operation.",
        )
        return JSONResponse(status_code=http.HTTP_409_CONFLICT, content=payload)
    log.error("consent_store_failure", exc_info=exc)
    payload = _build_error("store_unavailable", http.HTTP_503_SERVICE_UNAVAILABLE, "The consent store is unavailable.")
    return JSONResponse(status_code=http.HTTP_503_SERVICE_UNAVAILABLE, content=payload)

async def unhandled_exception_handler(request: Request, exc: Exception):
    log.error("unhandled_exception", exc_info=exc)
    payload = _build_error("server_error", http.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")
    return JSONResponse(status_code=http.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
