import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api import admin, attempts, attendance, auth, sessions
from app.core.config import settings
from app.core.errors import AccessControlError, TransientStoreError
from app.core.guardian import SessionGuardian
from app.db import Base
from app.db.session import SessionLocal, engine

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

guardian = SessionGuardian(
    session_factory=SessionLocal,
    interval=settings.GUARDIAN_INTERVAL_SECONDS,
    startup_delay=settings.GUARDIAN_STARTUP_DELAY_SECONDS,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.GUARDIAN_ENABLED:
        guardian.start()
    yield
    await guardian.stop()


app = FastAPI(title="Exam Access Controller", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"❌ [DB] {request.method} {request.url.path} failed: {exc}")
    return await access_control_error_handler(request, TransientStoreError("Database temporarily unavailable"))


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(attendance.router, prefix="/api/attendance", tags=["attendance"])
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(attempts.router, prefix="/api/attempts", tags=["attempts"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])


@app.get("/health")
def health():
    return {"status": "ok", "guardian": guardian.running}
