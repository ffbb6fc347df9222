"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import get_settings
from .domain.service import AccountLifecycle
from .messaging import RedisMessageBus
from .repository import build_identity_store
from .security.encryption import EncryptionCodec
from .security.passwords import CredentialHasher
from .security.tokens import TokenIssuer

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, Redis, services) for the app lifecycle."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    pool: ConnectionPool | None = None
    if settings.store_backend == "postgres":
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()
    client = redis.from_url(settings.redis_url, socket_timeout=settings.request_timeout_seconds)

    app.state.pool = pool
    app.state.account_service = AccountLifecycle(
        build_identity_store(settings, pool),
        RedisMessageBus(client, maxlen=settings.account_events_maxlen),
        hasher=CredentialHasher(),
        tokens=TokenIssuer.from_settings(settings),
        codec=EncryptionCodec.from_b64(settings.email_encryption_key),
        events_topic=settings.account_events_topic,
        code_length=settings.verification_code_length,
    )
    try:
        yield
    finally:
        client.close()
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
