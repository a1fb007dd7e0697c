import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from analyzer import AnalysisRequester
from auth import create_access_token, hash_password
from database import Base, enable_sqlite_foreign_keys, get_db
from errors import NotificationFailure
from main import app, get_dispatcher, get_requester, get_sleeper
from models import User
from notifications import NotificationDispatcher

GOOD_TEXT = (
    "Jane Doe - Senior Software Engineer. Eight years building payment systems at Acme Corp, "
    "led a team of five, migrated services to Kubernetes, BSc Computer Science 2015."
)


def make_reply(score=85, flags=None, summary="Resume looks consistent.", fenced=False):
    body = json.dumps(
        {
            "credibility_score": score,
            "risk_level": "low",
            "summary": summary,
            "flags": flags if flags is not None else [],
            "detailed_analysis": {
                "experience_consistency": "Consistent",
                "skills_alignment": "Aligned",
                "achievements_credibility": "Plausible",
                "overall_authenticity": "Authentic",
            },
        }
    )
    return f"```json\n{body}\n```" if fenced else body


class FakeChatClient:
    """Stands in for the chat-completion endpoint; replies are consumed in order."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.default = make_reply()
        self.calls = []

    def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSender:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise NotificationFailure("mail down")
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(session_factory, chat_client, sender, sleeps):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_requester] = lambda: AnalysisRequester(chat_client)
    app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(sender)
    app.dependency_overrides[get_sleeper] = lambda: sleeps.append
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def _make_user(username="alice", email=None, **fields):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            hashed_password=hash_password("secret123"),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user.username})}"}

    return _headers
