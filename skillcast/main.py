from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from skillcast.api.v1.router import api_router
from skillcast.core.config import settings
from skillcast.core.logging import configure_logging
from skillcast.db.init_db import init_db

configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if not settings.JWT_SECRET or not settings.JWT_REFRESH_SECRET:
        logger.error("Signing secrets are not configured; auth endpoints will answer 500")
    init_db()
    yield

app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

allow_origins = settings.CORS_ORIGINS
allow_credentials = '*' not in allow_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(api_router)
