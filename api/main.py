import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .chat.chat import router as chat_router
from services.conversation_service import get_conversation_service
from services.errors import ChatError, PersistenceError
from utils.logging_config import setup_logging
from utils.mongodb_conn import MongodbConnection, get_mongodb_connection
from utils.redis_conn import RedisConnection, get_redis_connection

load_dotenv()

logger = logging.getLogger(__name__)


def expose_error_details() -> bool:
    """Diagnostic details are only returned to clients in development."""
    return os.getenv("APP_ENV", "production").lower() == "development"


def _uses_mongo() -> bool:
    return os.getenv("CONVERSATION_STORE", "mongo").lower() != "memory"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    try:
        await get_conversation_service().ensure_indexes()
    except PersistenceError as e:
        logger.warning(f"[Startup] Could not ensure conversation indexes: {e}")
    yield
    if get_mongodb_connection.cache_info().currsize:
        get_mongodb_connection().close_mongo_client()
    if get_redis_connection.cache_info().currsize:
        await get_redis_connection().close()


app = FastAPI(title="Support Chat API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_details=expose_error_details()),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    content = {"error": "Invalid request"}
    if expose_error_details():
        content["details"] = str(exc.errors())
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"[API] Unhandled error on {request.method} {request.url.path}")
    content = {"error": "Internal server error"}
    if expose_error_details():
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content)


app.include_router(chat_router)


@app.get("/health")
async def health(redis_conn: RedisConnection = Depends(get_redis_connection)):
    if _uses_mongo():
        mongodb_conn: MongodbConnection = get_mongodb_connection()
        if not await mongodb_conn.check_connection():
            return {"status": "error", "message": "MongoDB connection failed"}
    if not await redis_conn.check_connection():
        return {"status": "error", "message": "Redis connection failed"}
    return {"status": "ok", "message": "Support chat backend is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
