from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from funnelbot.config import settings
from funnelbot.database import get_db, init_db
from funnelbot.logging_config import get_logger, setup_logging
from funnelbot.models import Campaign, ContactState, MembershipPlan, UnrecognizedMessage
from funnelbot.routers import control, webhook
from funnelbot.services.engine_controller import EngineController, get_controller

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Funnel Bot",
    description="WhatsApp funnel engine: catalog keyword matching and per-contact conversation state",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(control.router)


@app.on_event("startup")
async def prepare_database() -> None:
    if settings.auto_create_tables:
        init_db()
        logger.info("Database tables ensured")


@app.on_event("shutdown")
async def stop_engine() -> None:
    await get_controller().stop()


@app.get("/health")
async def health(controller: EngineController = Depends(get_controller)):
    return {"status": "ok", "engine": controller.status.value}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "members": db.query(MembershipPlan).count(),
        "campaigns": db.query(Campaign).count(),
        "contacts": db.query(ContactState).count(),
        "unrecognized_messages": db.query(UnrecognizedMessage).count(),
    }
