from __future__ import annotations
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional
from contextvars import ContextVar, Token

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
# Consent being worked on by the current request, for log enrichment.
_consent_id: ContextVar[Optional[str]] = ContextVar("consent_id", default=None)

def set_correlation_id(value: Optional[str]) -> tuple[str, Token]:
    if not value:
        value = str(uuid.uuid4())
    return value, _correlation_id.set(value)

def reset_correlation_id(token: Token) -> None:
    _correlation_id.reset(token)

def get_correlation_id(default: Optional[str] = None) -> Optional[str]:
    return _correlation_id.get() or default

def bind_consent_id(consent_id: Optional[str]) -> Token:
    return _consent_id.set(consent_id)

def reset_consent_id(token: Token) -> None:
    _consent_id.reset(token)

@contextmanager
def consent_scope(consent_id: Optional[str]) -> Iterator[None]:
    token = bind_consent_id(consent_id)
    try:
        yield
    finally:
        reset_consent_id(token)

def get_consent_id() -> Optional[str]:
    return _consent_id.get()
