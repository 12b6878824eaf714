import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from screening_api.config import get_settings
from screening_api.database import SessionLocal, init_db
from screening_api.services.rate_limiter import build_rate_limiter, sweep_expired_entries
from screening_api.services.submissions_service import get_submission_store
from screening_api.services.user_service import seed_admin
from screening_api.utils.errors import register_exception_handlers

# Import routes
from screening_api.routes.auth import router as auth_router
from screening_api.routes.submissions import router as submissions_router
from screening_api.routes.admin_submissions import router as admin_submissions_router
from screening_api.routes.dashboard import router as dashboard_router
from screening_api.routes.locations import router as locations_router
from screening_api.routes.sms import router as sms_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()

REQUIRED_ENV_VARS = ("JWT_SECRET", "AWS_REGION")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        seed_admin(db, settings.ADMIN_SEED_EMAIL, settings.ADMIN_SEED_PASSWORD)
    finally:
        db.close()

    sweeper = asyncio.create_task(sweep_expired_entries(app.state.rate_limiter))
    logger.info("Screening API started (%s)", settings.APP_ENV)
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title="Health Screening API",
    description="Community health screening intake, review and follow-up",
    version="1.0.0",
    lifespan=lifespan
)

app.state.rate_limiter = build_rate_limiter(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(auth_router)
app.include_router(submissions_router)
app.include_router(admin_submissions_router)
app.include_router(dashboard_router)
app.include_router(locations_router)
app.include_router(sms_router)


@app.get("/")
def root():
    return {
        "message": "Health Screening API",
        "status": "running",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Database reachability plus required configuration"""
    checks = {"database": False, "environment": False}
    details = {}

    try:
        table = get_submission_store().describe()["Table"]
        checks["database"] = True
        details["tableStatus"] = table.get("TableStatus")
    except (ClientError, BotoCoreError) as e:
        logger.error("Health check database call failed: %s", e)
        details["databaseError"] = "Submissions table unreachable"

    missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
    checks["environment"] = not missing
    if missing:
        details["missingEnvironment"] = missing

    healthy = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
            "details": details,
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("screening_api.main:app", host="0.0.0.0", port=8000, reload=True)
