from contextlib import asynccontextmanager
import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from starlette.responses import Response

from api_v1 import router as router_v1
from integrations.config import settings
from integrations.container import get_container
from integrations.errors import AuditQueryError, ReauthRequired, TransientProviderError
from integrations.logging_config import configure_logging, trace_id_ctx

logger = logging.getLogger(__name__)


class LoggingCORSMiddleware(CORSMiddleware):
    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        method = request.method
        response: Response = await super().dispatch(request, call_next)

        if origin:
            allowed_origin = response.headers.get("access-control-allow-origin")
            if allowed_origin:
                logger.debug(
                    "CORS request allowed | origin=%s | method=%s | allow_credentials=%s",
                    origin,
                    method,
                    settings.cors_allow_credentials,
                )
            else:
                logger.warning(
                    "CORS request denied or not matched | origin=%s | method=%s",
                    origin,
                    method,
                )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Application starting up...")
    logger.info(
        "CORS configuration | origins=%s | allow_credentials=%s",
        settings.cors_allowed_origins,
        settings.cors_allow_credentials,
    )

    container = get_container()
    # Fail fast on a bad AES_SECRET_KEY instead of on the first request
    container.token_cipher()
    container.token_manager()
    logger.info("Token manager initialized")

    yield

    logger.info("Application shutting down...")
    await container.database_helper().dispose()
    logger.info("Database engine disposed")


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    LoggingCORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router=router_v1, prefix=settings.api_v1_prefix)


@app.exception_handler(ReauthRequired)
async def reauth_required_handler(request: Request, exc: ReauthRequired) -> JSONResponse:
    logger.info(
        "Reauthorization required | company_id=%s | provider=%s | reason=%s",
        exc.company_id,
        exc.provider,
        exc.reason,
    )
    auth_url = get_container().token_manager().get_authorization_url(exc.provider)
    return JSONResponse(
        status_code=401,
        content={
            "detail": "Connection expired, please reconnect",
            "code": exc.code,
            "auth_url": auth_url,
        },
    )


@app.exception_handler(TransientProviderError)
async def transient_provider_error_handler(request: Request, exc: TransientProviderError) -> JSONResponse:
    logger.warning("Provider temporarily unavailable | provider=%s | error=%s", exc.provider, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Accounting provider is temporarily unavailable, please try again"},
    )


@app.exception_handler(AuditQueryError)
async def audit_query_error_handler(request: Request, exc: AuditQueryError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": "Audit records are temporarily unavailable"})


@app.middleware("http")
async def bind_trace_id(request: Request, call_next):
    # Assign/propagate a trace id for each request
    incoming_trace = request.headers.get("X-Trace-Id")
    trace_id = incoming_trace or str(uuid.uuid4())
    token = trace_id_ctx.set(trace_id)
    try:
        response = await call_next(request)
    finally:
        trace_id_ctx.reset(token)
    # Include trace id in response for clients to propagate
    response.headers["X-Trace-Id"] = trace_id
    return response


if __name__ == "__main__":

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")  # Allow external connections
    uvicorn.run("main:app", host=host, port=port, reload=True)
