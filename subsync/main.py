import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from subsync.core import config
from subsync.core.logging_config import setup_logging
from subsync.api.routes import apple_webhook, stripe_webhook, subscriptions, health

logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = "dev-only-secret-change-me"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)

    if config.RUN_MIGRATIONS:
        from subsync.db.migrate import run_migrations
        run_migrations()
    else:
        from subsync.db.init_db import init_db
        init_db()

    if config.SECRET_KEY == DEFAULT_SECRET_KEY:
        logger.warning("SECRET_KEY is the development default; set SECRET_KEY before deploying")
    if not config.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; Stripe webhooks will not be verified")

    logger.info("subsync API started")
    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Subsync API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(apple_webhook.router)
app.include_router(stripe_webhook.router)
app.include_router(subscriptions.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "Subsync API running"}
