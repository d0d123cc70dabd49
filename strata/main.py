import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from .api import (
    activities,
    agm,
    audit_logs,
    auth,
    billing,
    complaints,
    cron,
    dashboard,
    finance,
    notices,
    notifications,
    settings as settings_api,
    units,
    users,
    v1,
)
from .config import Base, SessionLocal, engine, settings
from .constants import DEFAULT_EXPENSE_CATEGORIES, DEFAULT_FUNDS
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .models.models import ExpenseCategory, Fund
from .services.notifications import dispatcher

configure_logging(settings.log_level, json=settings.log_json)
logger = logging.getLogger(__name__)


def ensure_funds(session: Session) -> None:
    existing = {fund.code for fund in session.query(Fund).all()}
    for code, name, description in DEFAULT_FUNDS:
        if code not in existing:
            session.add(Fund(code=code, name=name, description=description))
    session.commit()


def ensure_expense_categories(session: Session) -> None:
    existing = {category.name for category in session.query(ExpenseCategory).all()}
    for name in DEFAULT_EXPENSE_CATEGORIES:
        if name not in existing:
            session.add(ExpenseCategory(name=name))
    session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_funds(session)
        ensure_expense_categories(session)
    log_security_warnings(settings)
    yield
    dispatcher.shutdown()


app = FastAPI(title="JMB Idaman Kota Puteri - Strata Portal", lifespan=lifespan)

register_exception_handlers(app)
app.add_middleware(SecurityHeadersMiddleware, uploads_prefix=settings.uploads_public_prefix)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

uploads_route = "/" + settings.uploads_public_prefix.strip("/")
uploads_dir = settings.uploads_root_path
uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount(uploads_route, StaticFiles(directory=str(uploads_dir)), name="uploads")


@app.get("/health", tags=["system"])
def health() -> dict:
    return {"status": "ok"}


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(units.router, prefix="/units", tags=["units"])
app.include_router(billing.router, prefix="/billing", tags=["billing"])
app.include_router(settings_api.router, prefix="/settings", tags=["settings"])
app.include_router(finance.router, prefix="/finance", tags=["finance"])
app.include_router(agm.router, prefix="/agm", tags=["agm"])
app.include_router(notices.router)
app.include_router(complaints.router)
app.include_router(activities.router)
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(audit_logs.router)
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(v1.router, prefix="/api/v1", tags=["v1"])
