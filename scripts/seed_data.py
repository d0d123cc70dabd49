#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Usage:
    python scripts/seed_data.py --units 6
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from strata.auth.jwt import get_password_hash  # noqa: E402
from strata.config import Base, SessionLocal, engine  # noqa: E402
from strata.main import ensure_expense_categories, ensure_funds  # noqa: E402
from strata.models.models import Unit, User  # noqa: E402

STAFF_ACCOUNTS = [
    ("admin@example.com", "Pentadbir Sistem", "SUPER_ADMIN"),
    ("jmb@example.com", "Pengerusi JMB", "JMB"),
    ("staff@example.com", "Kakitangan Pejabat", "STAFF"),
    ("finance@example.com", "Pegawai Kewangan", "FINANCE"),
]


def get_or_create_user(session, email: str, name: str, role: str, phone: str = None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        name=name,
        phone=phone,
        role=role,
        hashed_password=get_password_hash("changeme"),
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


def create_unit_bundle(session, index: int) -> None:
    block = "J" if index % 2 else "K"
    unit_number = f"{block}-{10 + index}-{index}"
    if session.query(Unit).filter(Unit.unit_number == unit_number).first():
        return
    owner = get_or_create_user(
        session,
        f"owner{index}@example.com",
        f"Pemilik Unit {index}",
        "OWNER",
        phone=f"01{index:01d}2345678{index % 10}",
    )
    session.add(
        Unit(
            unit_number=unit_number,
            type="ATAS" if index % 2 else "BAWAH",
            owner_id=owner.id,
            manual_arrears_amount=Decimal("100.00") if index % 3 == 0 else Decimal("0"),
        )
    )


def seed_database(units: int) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_funds(session)
        ensure_expense_categories(session)

        for email, name, role in STAFF_ACCOUNTS:
            user = get_or_create_user(session, email, name, role)
            if role == "JMB" and not user.committee_type:
                user.committee_type = "JMB"
                user.committee_position = "Pengerusi"

        for index in range(1, max(units, 0) + 1):
            create_unit_bundle(session, index)

        session.commit()
        print(f"Seed complete. {units} sample units with owner accounts (password: 'changeme').")


def main():
    parser = argparse.ArgumentParser(description="Seed the strata database with sample data.")
    parser.add_argument("--units", type=int, default=6, help="Number of sample units to create")
    args = parser.parse_args()
    seed_database(args.units)


if __name__ == "__main__":
    main()
