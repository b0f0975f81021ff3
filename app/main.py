import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.dependencies import get_services
from app.logging_config import get_logger, setup_logging
from app.routers import admin, payment, webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="ColorBot API",
    description="WhatsApp colour-analysis bot with paid style guides",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(payment.router)
app.include_router(admin.router)


def _is_background_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.background_tasks_enabled


@app.on_event("startup")
async def start_background_tasks() -> None:
    services = get_services()
    if not _is_background_enabled():
        return
    services.scheduler.start()


@app.on_event("shutdown")
async def stop_background_tasks() -> None:
    services = get_services()
    await services.scheduler.stop()
    await services.conversations.wait_idle()
    services.flush()
    logger.info("Stores flushed on shutdown")


@app.get("/health")
async def health():
    return {"status": "ok"}
