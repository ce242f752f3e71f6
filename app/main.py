import time
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from app.core.config import settings
from app.core.logging import request_id_ctx, setup_logging
from app.api.router import api_router
from app.core.db import SessionLocal, init_models
from app.core.errors import (
    AuthenticationError, ConflictError, InvalidPayloadError, NotFoundError, PersistenceError, WebhookConfigurationError,
)
from app.modules.media.cleanup import CleanupExecutor, CleanupQueue
from app.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)
logger = logging.getLogger(__name__)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    request_id_ctx.set(rid)
    response = await call_next(request)
    return response

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f"{process_time:.2f}ms"

    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {formatted_process_time}"
    )

    return response

@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=401, content={"message": str(exc)})

@app.exception_handler(WebhookConfigurationError)
async def webhook_configuration_error_handler(request: Request, exc: WebhookConfigurationError):
    return JSONResponse(status_code=500, content={"message": str(exc)})

@app.exception_handler(InvalidPayloadError)
async def invalid_payload_handler(request: Request, exc: InvalidPayloadError):
    logger.warning(f"Invalid payload for {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"message": str(exc)})

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"message": str(exc)})

@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"message": str(exc)})

@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure for {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"message": "Event could not be processed; retry later."})

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


@app.on_event("startup")
async def on_startup():
    await init_models()
    executor = CleanupExecutor(SessionLocal, registry.object_storage())
    app.state.cleanup_queue = CleanupQueue(executor, maxsize=settings.CLEANUP_QUEUE_MAXSIZE)
    app.state.cleanup_queue.start()

@app.on_event("shutdown")
async def on_shutdown():
    queue = getattr(app.state, "cleanup_queue", None)
    if queue:
        await queue.stop()


app.include_router(api_router, prefix=settings.API_PREFIX)
