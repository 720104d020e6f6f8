import pytest
from werkzeug.security import generate_password_hash

from app.adsmanager import create_app
from app.adsmanager.db import session_scope
from app.adsmanager.models import Base, Permission, Role, User

CSRF = "test-csrf-token"
FUNCTIONS_SECRET = "test-functions-secret"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("FUNCTIONS_SECRET", FUNCTIONS_SECRET)
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="packages.manage", name="Packages: manage catalogue")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(r)
        owner = User(email="owner@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        other = User(email="other@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, admin, owner, other])

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email: str = "owner@example.com", password: str = "pw"):
    r = client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)
    assert r.status_code == 302
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    return r


def form(**fields) -> dict:
    fields["csrf_token"] = CSRF
    return fields


def get_user(s, email: str) -> User:
    return s.query(User).filter(User.email == email).one()


def bearer() -> dict:
    return {"Authorization": f"Bearer {FUNCTIONS_SECRET}"}


def flashes(client) -> list[str]:
    with client.session_transaction() as sess:
        return [message for _category, message in sess.get("_flashes", [])]
