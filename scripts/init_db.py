import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.adsmanager.models import Permission, Role, User
from app.adsmanager.modules.billing.models import Package
from app.adsmanager.modules.notifications.service import ensure_preferences
from app.adsmanager.modules.profiles.service import get_or_create_profile
from scripts._db_utils import script_session

# (name, description, price_cents, features)
DEFAULT_PACKAGES = (
    (
        "Starter",
        "Image ads for small businesses getting started on Viber.",
        2900,
        ["Image ads", "Basic analytics dashboard", "Email support"],
    ),
    (
        "Video Pulse",
        "Video and image ads with detailed performance analytics.",
        7900,
        ["Image and video ads", "Detailed analytics", "Audience targeting", "Priority support"],
    ),
    (
        "Business",
        "Everything in Video Pulse for teams running many campaigns.",
        14900,
        ["Unlimited campaigns", "Detailed analytics", "CSV data export", "Dedicated account manager"],
    ),
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user and the default package catalogue in an
    idempotent way. Does NOT overwrite an existing admin user's password, and
    leaves packages that already exist (matched by name) untouched.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@adsmanager.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    # Direct engine/session so release can seed without building the app.
    with script_session(database_url) as s:
        def ensure_perm(key: str, name: str) -> Permission:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            return p

        p_packages_manage = ensure_perm("packages.manage", "Packages: manage catalogue")

        role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
        if not role_admin:
            role_admin = Role(key="admin", name="Administrator")
            s.add(role_admin)
        if p_packages_manage not in role_admin.permissions:
            role_admin.permissions.append(p_packages_manage)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
            s.flush()
        if role_admin not in user.roles:
            user.roles.append(role_admin)
        get_or_create_profile(s, user)
        ensure_preferences(s, user.id)

        for name, description, price_cents, features in DEFAULT_PACKAGES:
            if s.query(Package.id).filter(Package.name == name).first() is None:
                s.add(
                    Package(
                        name=name,
                        description=description,
                        price_cents=price_cents,
                        features=features,
                        is_active=True,
                    )
                )

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
