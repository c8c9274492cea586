import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.staffhub.constants import ROLE_ADMIN  # noqa: E402
from app.staffhub.db import make_engine, make_sessionmaker  # noqa: E402
from app.staffhub.models import RoleMembership, User  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user and its global ADMIN membership in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@staffhub.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///staffhub.db").strip()

    # Own engine so this can run in release without building the Flask app.
    engine = make_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
            s.flush()

        has_admin = (
            s.query(RoleMembership)
            .filter(RoleMembership.user_id == user.id, RoleMembership.role == ROLE_ADMIN)
            .one_or_none()
        )
        if not has_admin:
            s.add(RoleMembership(user_id=user.id, role=ROLE_ADMIN))
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
