import sys
from collections.abc import Callable, Generator
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from strata.config import Base, settings  # noqa: E402
import strata.config as app_config  # noqa: E402
import strata.main as app_main  # noqa: E402
from strata.auth.jwt import get_current_user, get_db, get_password_hash  # noqa: E402
from strata.core.rate_limit import limiter  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from strata.models import models as _all_models  # noqa: E402,F401
from strata.models.models import Bill, Unit, User  # noqa: E402
from strata.services import notifications  # noqa: E402
from strata.services.storage import storage_service  # noqa: E402

PASSWORD = "changeme123"


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _isolate_side_effects(monkeypatch, tmp_path):
    """Run notification jobs inline and keep uploads and emails inside the test's tmp dir."""
    monkeypatch.setattr(notifications, "dispatcher", notifications.NotificationDispatcher(workers=0))
    monkeypatch.setattr(storage_service, "upload_root", tmp_path / "uploads")
    monkeypatch.setattr(settings, "email_backend", "local")
    monkeypatch.setattr(settings, "email_output_dir", str(tmp_path / "emails"))
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database, with funds and expense categories seeded, for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    app_main.ensure_funds(session)
    app_main.ensure_expense_categories(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    counter = {"value": 0}

    def _create(
        email: Optional[str] = None,
        role: str = "OWNER",
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        counter["value"] += 1
        user = User(
            email=email or f"user{counter['value']}@example.com",
            name=name or f"User {counter['value']}",
            phone=phone,
            role=role,
            hashed_password=get_password_hash(PASSWORD),
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_unit(db_session: Session) -> Callable[..., Unit]:
    def _create(
        unit_number: str = "J-13-1",
        unit_type: str = "BAWAH",
        owner: Optional[User] = None,
        tenant: Optional[User] = None,
        manual_arrears: str = "0",
        adjustment: str = "0",
        is_active: bool = True,
    ) -> Unit:
        unit = Unit(
            unit_number=unit_number,
            type=unit_type,
            owner_id=owner.id if owner else None,
            tenant_id=tenant.id if tenant else None,
            manual_arrears_amount=Decimal(manual_arrears),
            monthly_adjustment_amount=Decimal(adjustment),
            is_active=is_active,
        )
        db_session.add(unit)
        db_session.commit()
        return unit

    return _create


@pytest.fixture
def create_bill(db_session: Session) -> Callable[..., Bill]:
    def _create(
        unit: Unit,
        amount: str = "88.00",
        month: int = 1,
        year: int = 2026,
        bill_type: str = "MAINTENANCE",
        status: str = "PENDING",
    ) -> Bill:
        bill = Bill(
            unit_id=unit.id,
            amount=Decimal(amount),
            month=month,
            year=year,
            type=bill_type,
            status=status,
        )
        db_session.add(bill)
        db_session.commit()
        return bill

    return _create


def _override_get_db(session):
    def _generator():
        try:
            yield session
        finally:
            pass

    return _generator


def _override_user(user):
    def _provider():
        return user

    return _provider


@pytest.fixture
def api_client(db_session: Session):
    """Return a factory for TestClients bound to ``db_session`` and authenticated as a given user."""
    from fastapi.testclient import TestClient

    clients = []

    def _client(user: Optional[User] = None) -> TestClient:
        app_main.app.dependency_overrides[get_db] = _override_get_db(db_session)
        if user is not None:
            app_main.app.dependency_overrides[get_current_user] = _override_user(user)
        else:
            app_main.app.dependency_overrides.pop(get_current_user, None)
        client = TestClient(app_main.app)
        clients.append(client)
        return client

    try:
        yield _client
    finally:
        for client in clients:
            client.close()
        app_main.app.dependency_overrides.clear()
