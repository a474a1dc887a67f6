"""
Shared fixtures: a file-backed SQLite database per test and local storage.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.base import Base
from db.models import Dataset, Team, TeamMember, User
from db.repositories.storage import LocalFileStorage
from db.session import build_session_factory, create_db_engine

SAMPLE_CSV = (
    "region,revenue,notes\n"
    "north,100,\n"
    "south,250,\n"
    "east,75,\n"
    "west,300,\n"
)


@pytest.fixture()
def engine(tmp_path) -> Iterator[Engine]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'audit.db'}")
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "storage")


@pytest.fixture()
def make_user(db: Session) -> Callable[..., User]:
    def _make(*, email: str | None = None, ai_context: str | None = None) -> User:
        user = User(
            name="Test User",
            email=email or f"{uuid.uuid4().hex}@example.com",
            settings={"ai_context": ai_context} if ai_context else None,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_team(db: Session) -> Callable[..., Team]:
    def _make(*, members: dict[uuid.UUID, str] | None = None, ai_context: str | None = None) -> Team:
        team = Team(name="Analytics", settings={"ai_context": ai_context} if ai_context else None)
        db.add(team)
        db.flush()
        for user_id, role in (members or {}).items():
            db.add(TeamMember(team_id=team.id, user_id=user_id, role=role))
        db.commit()
        return team

    return _make


@pytest.fixture()
def make_dataset(db: Session, storage: LocalFileStorage) -> Callable[..., Dataset]:
    def _make(
        *,
        owner: User,
        csv_text: str = SAMPLE_CSV,
        description: str | None = "Quarterly revenue by sales region",
        column_descriptions: dict[str, str] | None = None,
        team: Team | None = None,
        **overrides: Any,
    ) -> Dataset:
        header = csv_text.splitlines()[0].split(",") if csv_text else []
        storage_path = storage.save(
            owner_id=owner.id,
            file_name="upload.csv",
            content=csv_text.encode("utf-8"),
        )
        dataset = Dataset(
            owner_id=owner.id,
            team_id=team.id if team is not None else None,
            name="Revenue by region",
            original_filename="upload.csv",
            storage_path=storage_path,
            description=description,
            schema_info=[{"name": name, "type": "string"} for name in header],
            column_descriptions=(
                column_descriptions
                if column_descriptions is not None
                else {name: f"The {name} column" for name in header}
            ),
            **overrides,
        )
        db.add(dataset)
        db.commit()
        return dataset

    return _make
