import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rootra.api.routes import audit, auth, batches, fraud, notifications, qr, trace
from rootra.core.config import settings
from rootra.core.errors import register_exception_handlers
from rootra.core.security import AuthRequiredMiddleware, RequestContextMiddleware
from rootra.db.session import init_db

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Rootra Batch Traceability API",
    version="0.1.0",
    description=(
        "Role-gated supply-chain tracking for herbal batches: registration, custody "
        "transitions, quality certificates, QR verification and consumer provenance."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-API-Key", "X-Request-ID"],
)
app.add_middleware(AuthRequiredMiddleware)
app.add_middleware(RequestContextMiddleware)
register_exception_handlers(app)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


app.include_router(batches.router, prefix="/api/v1/batches", tags=["batches"])
app.include_router(trace.router, prefix="/api/v1/trace", tags=["traceability"])
app.include_router(qr.router, prefix="/api/v1/qr", tags=["qr"])
app.include_router(fraud.router, prefix="/api/v1/fraud", tags=["fraud"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["notifications"])
app.include_router(audit.router, prefix="/api/v1/audit", tags=["audit"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
