# pantry/backend/main.py
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import text

from pantry.backend.core.config import settings
from pantry.backend.core.errors import register_error_handlers
from pantry.backend.core.logging_config import setup_logging
from pantry.backend.services.demo_identity import init_demo_identity
from pantry.db import session as db_session

# 모델 모듈 임포트(테이블 등록 보장용)
from pantry.db import base as _models  # noqa: F401

# 라우터
from pantry.backend.routers import auth, user

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.demo_user_id = None
    if settings.auth_bypass:
        init_demo_identity(app)
    yield


app = FastAPI(
    title="Smart Pantry Backend",
    version=os.getenv("APP_VERSION", "0.1.0"),
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# 라우터 등록
app.include_router(auth.auth_router)
app.include_router(user.user_router)


@app.get("/health")
def health_app():
    return {"ok": True}


@app.get("/health/db")
def health_db():
    # Migration is a deployment concern. Runtime only verifies DB connectivity.
    try:
        with db_session.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"ok": True}
    except Exception:
        logger.exception("database health check failed")
        raise HTTPException(status_code=500, detail="Database connection failed")
