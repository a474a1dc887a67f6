"""
tests/test_database_settings.py

Database URL resolution, dialect checks and `.env` loading.
"""

from __future__ import annotations

import os

import pytest

from app.config import (
    DatabaseSettings,
    database_settings_for,
    database_url_from_env,
    load_env_files,
    to_sqlalchemy_url,
)
from db.session import create_db_engine

_URL_ENVS = ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL", "ENVIRONMENT")


@pytest.fixture()
def clean_env(monkeypatch):
    for name in _URL_ENVS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestToSqlalchemyUrl:
    @pytest.mark.parametrize(
        "raw",
        ["postgres://u:p@db/audit", "postgresql://u:p@db/audit", " postgresql+psycopg://u:p@db/audit "],
    )
    def test_postgres_uses_psycopg(self, raw: str) -> None:
        assert to_sqlalchemy_url(raw) == "postgresql+psycopg://u:p@db/audit"

    def test_sqlite_is_untouched(self) -> None:
        assert to_sqlalchemy_url("sqlite:///audit.db") == "sqlite:///audit.db"

    def test_other_dialects_are_rejected(self) -> None:
        with pytest.raises(ValueError, match="mysql"):
            to_sqlalchemy_url("mysql://u:p@db/audit")


class TestDatabaseUrlFromEnv:
    def test_nothing_configured(self, clean_env) -> None:
        assert database_url_from_env() is None

    def test_direct_url_wins(self, clean_env) -> None:
        clean_env.setenv("DATABASE_URL", "sqlite:///direct.db")
        clean_env.setenv("LOCAL_DATABASE_URL", "sqlite:///local.db")
        assert database_url_from_env() == "sqlite:///direct.db"

    def test_cloud_url_only_in_cloud_environments(self, clean_env) -> None:
        clean_env.setenv("CLOUD_DATABASE_URL", "postgresql://u:p@cloud/audit")
        clean_env.setenv("LOCAL_DATABASE_URL", "sqlite:///local.db")

        assert database_url_from_env() == "sqlite:///local.db"

        clean_env.setenv("ENVIRONMENT", "Production")
        assert database_url_from_env() == "postgresql://u:p@cloud/audit"


class TestDatabaseSettings:
    def test_dialect(self) -> None:
        assert DatabaseSettings(url="postgresql+psycopg://db/audit").dialect == "postgresql"
        assert DatabaseSettings(url="sqlite:///audit.db").dialect == "sqlite"

    def test_pool_options_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("DB_POOL_SIZE", "12")
        monkeypatch.setenv("DB_MAX_OVERFLOW", "not-a-number")

        settings = database_settings_for("postgres://u:p@db/audit")

        assert settings.url == "postgresql+psycopg://u:p@db/audit"
        assert settings.pool_size == 12
        assert settings.max_overflow == 10

    def test_sqlite_engine(self, tmp_path) -> None:
        engine = create_db_engine(f"sqlite:///{tmp_path / 'audit.db'}")
        try:
            assert engine.dialect.name == "sqlite"
        finally:
            engine.dispose()


def test_load_env_files_keeps_existing_values(tmp_path, monkeypatch) -> None:
    (tmp_path / ".env").write_text(
        "# comment\nAUDIT_TEST_A='from env'\nAUDIT_TEST_B=from env\nnot a pair\n",
        encoding="utf-8",
    )
    (tmp_path / ".env.local").write_text("AUDIT_TEST_A=from local\n", encoding="utf-8")
    monkeypatch.setenv("AUDIT_TEST_B", "from process")
    monkeypatch.setenv("AUDIT_TEST_A", "placeholder")
    monkeypatch.delenv("AUDIT_TEST_A")

    load_env_files(tmp_path)

    assert os.environ["AUDIT_TEST_A"] == "from env"
    assert os.environ["AUDIT_TEST_B"] == "from process"
