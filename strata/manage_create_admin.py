"""Create or promote the initial SUPER_ADMIN user for the strata portal.

Run: `python -m strata.manage_create_admin --email admin@example.com --password changeme`
"""

import argparse
from contextlib import contextmanager

from strata.auth.jwt import get_password_hash
from strata.config import Base, SessionLocal, engine
from strata.models.models import User


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="Create the initial SUPER_ADMIN user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Pentadbir Sistem")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        email = args.email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = "SUPER_ADMIN"
            user.is_active = True
            user.hashed_password = get_password_hash(args.password)
            print(f"Updated existing user {user.id} to SUPER_ADMIN.")
            return

        user = User(
            email=email,
            name=args.name,
            hashed_password=get_password_hash(args.password),
            role="SUPER_ADMIN",
        )
        db.add(user)
        db.flush()
        print(f"Created SUPER_ADMIN user with id {user.id}")


if __name__ == "__main__":
    main()
