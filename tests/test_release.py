import pytest
from sqlalchemy import create_engine, inspect

from app.adsmanager.models import Role, User
from app.adsmanager.modules.billing.models import Package
from app.adsmanager.modules.profiles.models import Profile
from scripts import init_db, start
from scripts._db_utils import script_session
from scripts.release import run_release


def test_release_migrates_and_seeds_idempotently(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")

    run_release()
    run_release()

    engine = create_engine(db_url)
    try:
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        assert {"campaigns", "ads", "campaign_analytics", "packages", "subscriptions", "profiles"} <= tables
        assert "uq_subscriptions_one_active_per_user" in {ix["name"] for ix in insp.get_indexes("subscriptions")}
    finally:
        engine.dispose()

    with script_session(db_url) as s:
        names = [p.name for p in s.query(Package).order_by(Package.price_cents).all()]
        assert names == [name for name, *_ in init_db.DEFAULT_PACKAGES]
        admin = s.query(User).filter(User.email == "boss@example.com").one()
        assert [r.key for r in admin.roles] == ["admin"]
        assert s.query(Role).count() == 1
        assert s.query(Profile).filter(Profile.user_id == admin.id).count() == 1


def test_gunicorn_argv_and_env_validation(monkeypatch):
    argv = start.gunicorn_argv(8080, 3, 120)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:8080"
    assert argv[argv.index("--workers") + 1] == "3"

    monkeypatch.setenv("PORT", "70000")
    with pytest.raises(SystemExit):
        start._positive_int("PORT", 8080, upper=65535)
    monkeypatch.setenv("PORT", "")
    assert start._positive_int("PORT", 8080, upper=65535) == 8080
