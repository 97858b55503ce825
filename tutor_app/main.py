"""
CELPIP Tutor Backend API
Writing/speaking practice with AI scoring, a one-task free demo and Stripe-billed premium.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", get_database_url())
        alembic_cfg.attributes["configure_logger"] = False
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tutor_app.api.routes import auth, tasks, payments, webhooks
from tutor_app.core.errors import TutorError
from tutor_app.db.session import engine, get_database_url
from tutor_app.db.base import Base
# Import all models to ensure they're registered with Base
from tutor_app.models import Account, UsageEvent, PaymentEvent  # noqa: F401
from tutor_app.services.ai_client import build_ai_client
from tutor_app.services.payment_client import FRONTEND_URL, build_payment_client

app = FastAPI(title="CELPIP Tutor")

app.state.ai_client = build_ai_client()
app.state.payment_client = build_payment_client()


@app.on_event("startup")
async def startup_event():
    """Create tables, then run Alembic migrations on every server restart."""
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")
    except Exception:
        logger.exception("Error creating tables")
        raise

    run_migrations()


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        FRONTEND_URL,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api/payments", tags=["Webhooks"])


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "aiConfigured": app.state.ai_client.configured,
        "paymentsConfigured": app.state.payment_client.configured,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tutor_app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
