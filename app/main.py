"""User-center API entrypoint: logging, CORS and the v1 routers."""

import logging

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as v1_router
from app.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="User Center API",
    description="User accounts, data scopes and role assignment for the admin console.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

logger.info(
    "User center API configured",
    extra={"app_env": settings.APP_ENV, "superuser_id": settings.SUPERUSER_ID},
)


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "user-center", "api": settings.API_V1_PREFIX}
