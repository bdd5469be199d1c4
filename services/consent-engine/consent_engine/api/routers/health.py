from __future__ import annotations
from fastapi import APIRouter

router = APIRouter(tags=["health"])

@router.get("/health", summary="Liveness probe")
def health():
    return {"status": "ok"}
