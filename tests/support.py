"""Shared builders for tests: isolated SQLite databases, seeded roles, users and apps."""

import uuid

from fastapi import FastAPI
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.models import USER_ROLE, Base, User
from app.services.bootstrap import create_account, seed_roles

TEST_SECRET = "test-only-secret-key-0123456789abcdef"
DEFAULT_PASSWORD = "secret1"


def make_settings(**overrides: object) -> Settings:
    values = {
        "APP_ENV": "test",
        "DATABASE_URL": "sqlite://",
        "JWT_SECRET": TEST_SECRET,
        "SCHEDULER_ENABLED": False,
        "SEED_DEFAULTS": False,
        "RATE_LIMIT_BURST": 1000,
        "AUTH_RATE_LIMIT_BURST": 1000,
    }
    values.update(overrides)
    return Settings(**values)


def make_engine(url: str = "sqlite://") -> Engine:
    """Engine with all tables created. In-memory URLs share one connection across threads."""
    if url == "sqlite://":
        engine = create_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(url: str = "sqlite://", seed: bool = True) -> sessionmaker:
    factory = sessionmaker(bind=make_engine(url), autocommit=False, autoflush=False)
    if seed:
        db = factory()
        try:
            seed_roles(db)
        finally:
            db.close()
    return factory


def add_user(
    db: Session,
    username: str,
    role: str = USER_ROLE,
    password: str = DEFAULT_PASSWORD,
) -> User:
    return create_account(db, username, f"{username}@x.com", password, role_name=role)


def build_app(session_factory: sessionmaker | None = None, **overrides: object) -> FastAPI:
    from app.main import create_app

    return create_app(
        settings=make_settings(**overrides),
        session_factory=session_factory or make_session_factory(),
    )


def new_id() -> uuid.UUID:
    return uuid.uuid4()
