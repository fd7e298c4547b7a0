from __future__ import annotations

import pytest
from sqlalchemy.orm import sessionmaker

from tms.auth import CurrentUser
from tms.database import Base, build_engine
import tms.models  # noqa: F401
from tms.services.notifier import Notifier
from tms.services.workspace import Workspace
from tms.store import DocumentStore


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tms.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def store(session_factory) -> DocumentStore:
    return DocumentStore(session_factory, max_attempts=5, backoff_seconds=0)


@pytest.fixture
def dispatched() -> list[str]:
    return []


@pytest.fixture
def notifier(store, dispatched) -> Notifier:
    return Notifier(store, dispatch=dispatched.append)


@pytest.fixture
def workspace(store):
    with Workspace(store, poll_seconds=0) as ws:
        yield ws


@pytest.fixture
def manager() -> CurrentUser:
    return CurrentUser(uid="u-manager", name="김관리", role="Manager")


@pytest.fixture
def member() -> CurrentUser:
    return CurrentUser(uid="u-member", name="이사원", role="Member")
