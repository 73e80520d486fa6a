import os
import sys

# 설정 로드 전에 테스트용 인메모리 저장소 지정
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TEACHER_PIN", "999999")
os.environ.setdefault("APP_ID", "test-app")

# Ensure project root is on sys.path so tests can import main.py and the packages
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from database.db import Base, SessionLocal, engine, init_db
from dependencies.portal import get_session_manager
from services.llm.base import NarrativeClient
from services.portal import SessionManager
from services.store import DocumentStore, IdentityProvider
from services.sync import SessionMirrors


class FakeNarrativeClient(NarrativeClient):
    def __init__(self, text="Great work, keep it up."):
        self.text = text
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        return self.text


@pytest.fixture(autouse=True)
def fresh_db():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def teacher_identity():
    return IdentityProvider().sign_in("class-601")


@pytest.fixture
def mirrors(store, teacher_identity):
    m = SessionMirrors(store, teacher_identity)
    m.open()
    yield m
    m.close()


@pytest.fixture
def narrative():
    return FakeNarrativeClient()


@pytest.fixture
def manager(store, narrative):
    m = SessionManager(store, narrative_client=narrative)
    yield m
    m.close_all()


@pytest.fixture
def client(manager):
    from main import app

    app.dependency_overrides[get_session_manager] = lambda: manager
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class FailingCommits:
    """fail=True 인 동안 commit() 이 SQLAlchemyError 를 던지는 세션 팩토리"""

    def __init__(self):
        self.fail = False

    def __call__(self):
        db = SessionLocal()
        if self.fail:
            def commit():
                raise SQLAlchemyError("disk I/O error")

            db.commit = commit
        return db


@pytest.fixture
def failing_commits():
    return FailingCommits()
