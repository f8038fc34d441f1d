"""Threat feed ingestion service.

FastAPI entry point with lifespan management: tables, admin seeding and the
background feed scheduler.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from .api.router import api_router
from .config import get_config
from .database import close_engine, create_tables, get_session_factory
from .dependencies import get_feed_scheduler, reset_services
from .middleware.error_handler import register_error_handlers
from .middleware.request_id import RequestIDMiddleware
from .models.user import User
from .utils.logging import get_logger, setup_logging
from .utils.security import hash_password

config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("threatfeeds.main")


async def _seed_admin_user(factory) -> None:
    """Create the configured admin account if it does not exist (idempotent)."""
    async with factory() as session:
        result = await session.execute(select(User).where(User.username == config.admin_username))
        if result.scalar_one_or_none() is not None:
            return
        session.add(
            User(
                username=config.admin_username,
                password_hash=hash_password(config.admin_password),
                role="admin",
            )
        )
        await session.commit()
    logger.info("admin_user_seeded", username=config.admin_username)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("threatfeeds_starting", host=config.host, port=config.port)

    if config.secret_key == "CHANGE_ME_IN_PRODUCTION":
        if not config.debug:
            raise RuntimeError(
                "INSECURE_SECRET_KEY: default secret_key detected in production mode. "
                "Set a strong, unique SECRET_KEY in .env before deploying."
            )
        logger.warning("insecure_secret_key", detail="default secret_key in use")

    await create_tables(config)
    await _seed_admin_user(get_session_factory(config))

    scheduler = None
    if config.scheduler_enabled:
        scheduler = get_feed_scheduler()
        await scheduler.start()

    yield

    # --- Shutdown ---
    if scheduler is not None:
        await scheduler.stop()
    reset_services()
    await close_engine()
    logger.info("threatfeeds_stopped")


app = FastAPI(
    title=config.app_name,
    description="Custom threat-intelligence feed ingestion",
    version="1.0.0",
    lifespan=lifespan,
)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)
# Added last so it runs first
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": config.app_name}


def main():
    """Run the feed service."""
    uvicorn.run(
        "threatfeeds.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
