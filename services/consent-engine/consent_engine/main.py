from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from consent_engine.api.routers import (
    consents_authorize,
    consents_create,
    consents_delete,
    consents_extend,
    consents_extensions,
    consents_get,
    consents_reject,
    health,
    resources,
)
from consent_engine.cache.redis_client import close_redis
from consent_engine.core.config import settings
from consent_engine.core.errors import (
    consent_exception_handler,
    http_exception_handler,
    store_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from consent_engine.core.logging import setup_logging
from consent_engine.core.metrics import MetricsMiddleware, router as metrics_router
from consent_engine.domain.errors import ConsentError, StoreError
from consent_engine.middleware.correlation import CorrelationMiddleware


app = FastAPI(title=settings.APP_NAME, version="0.1.0")
setup_logging()

@app.on_event("startup")
async def on_startup():
    if settings.STORE_BACKEND == "sql":
        from consent_engine.db.init_db import init_db
        init_db()

@app.on_event("shutdown")
async def on_shutdown():
    await close_redis()

# Middleware: correlation id propagation and request metrics
app.add_middleware(CorrelationMiddleware)
app.add_middleware(MetricsMiddleware, exclude_routes=settings.METRICS_EXCLUDE_ROUTES)

# Exception handlers (uniform error JSON)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(ConsentError, consent_exception_handler)
app.add_exception_handler(StoreError, store_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Routers
app.include_router(health.router)
app.include_router(consents_create.router)
app.include_router(consents_get.router)
app.include_router(consents_delete.router)
app.include_router(consents_extend.router)
app.include_router(consents_extensions.router)
app.include_router(consents_authorize.router)
app.include_router(consents_reject.router)
app.include_router(resources.router)

if settings.METRICS_ENABLED:
    app.include_router(metrics_router)

# Root
@app.get("/")
def root():
    return {"service": settings.APP_NAME, "env": settings.APP_ENV}


def run() -> None:
    import uvicorn
    uvicorn.run("consent_engine.main:app", host=settings.HOST, port=settings.PORT)
