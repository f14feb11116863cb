"""Shared fixtures: an app on in-memory SQLite and small factories."""

from datetime import datetime, timedelta

import pytest
from flask import g

from matchdesk import create_app
from matchdesk.extensions import db
from matchdesk.models import (
    ClientArtistAffinity,
    FreelancerProfile,
    Task,
    TaskOffer,
    TaskStatus,
    User,
)
from matchdesk.security import Actor, Role

# 12:00 UTC on a Monday: peak hours for artists in UTC
NOW = datetime(2026, 3, 2, 12, 0, 0)


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "noreply@matchdesk.test"
    EXTERNAL_BASE_URL = "http://matchdesk.test"
    ADMIN_ALERT_EMAILS = []
    OFFER_SWEEP_BATCH_SIZE = 50
    LOG_LEVEL = "WARNING"
    LOG_DIR = None
    SESSION_COOKIE_SECURE = False


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def sent(monkeypatch):
    """Capture notifications queued by the assignment service."""
    calls = []
    from matchdesk.services import assignment_service

    def _artist(artist_id, summary, kind):
        calls.append(("artist", artist_id, kind))
        return True

    def _client(client_id, summary, kind):
        calls.append(("client", client_id, kind))
        return True

    def _admin(details):
        calls.append(("admin", details["id"], "escalated"))
        return True

    monkeypatch.setattr(assignment_service, "notify_artist", _artist)
    monkeypatch.setattr(assignment_service, "notify_client", _client)
    monkeypatch.setattr(assignment_service, "notify_admin", _admin)
    return calls


# ---------------------
# Factories
# ---------------------

_seq = {"n": 0}


def _next():
    _seq["n"] += 1
    return _seq["n"]


def make_user(session, role="client", **kw) -> User:
    n = _next()
    user = User(
        name=kw.pop("name", f"{role.title()} {n}"),
        email=kw.pop("email", f"{role}{n}@example.com"),
        role=role,
        status=kw.pop("status", "active"),
        **kw,
    )
    session.add(user)
    session.commit()
    return user


def make_admin(session) -> User:
    return make_user(session, role="admin")


def make_artist(session, skills=("logo design",), timezone="UTC", experience_level="MID",
                rating=4.5, active_tasks=0, **profile) -> User:
    user = make_user(session, role="freelancer")
    fp = FreelancerProfile(
        user_id=user.id,
        skills=list(skills),
        specializations=list(profile.pop("specializations", [])),
        preferred_categories=list(profile.pop("preferred_categories", [])),
        timezone=timezone,
        experience_level=experience_level,
        rating_avg=rating,
        approval_status=profile.pop("approval_status", "approved"),
        **profile,
    )
    session.add(fp)
    session.commit()
    if active_tasks:
        client = make_user(session)
        for i in range(active_tasks):
            session.add(Task(
                client_id=client.id,
                freelancer_id=user.id,
                title=f"busy {i}",
                status=TaskStatus.IN_PROGRESS.value,
            ))
        session.commit()
    return user


def make_task(session, client, **kw) -> Task:
    task = Task(
        client_id=client.id,
        title=kw.pop("title", "Logo for a coffee shop"),
        category=kw.pop("category", "logo"),
        description=kw.pop("description", "A clean logo"),
        complexity=kw.pop("complexity", "INTERMEDIATE"),
        urgency=kw.pop("urgency", "STANDARD"),
        required_skills=list(kw.pop("required_skills", ["logo design"])),
        **kw,
    )
    session.add(task)
    session.commit()
    return task


def favorite(session, client, artist):
    session.add(ClientArtistAffinity(client_id=client.id, artist_id=artist.id, is_favorite=True))
    session.commit()


def put_on_offer(session, task, artist, level=1, now=NOW, minutes=120, response="pending"):
    """Place a task directly into an offered state (or add a closed ledger row)."""
    expires = now + timedelta(minutes=minutes)
    session.add(TaskOffer(
        task_id=task.id,
        artist_id=artist.id,
        match_score=80.0,
        escalation_level=level,
        offered_at=now,
        expires_at=expires,
        response=response,
    ))
    if response == "pending":
        task.status = TaskStatus.OFFERED.value
        task.offered_to = artist.id
        task.offer_expires_at = expires
    task.escalation_level = level
    session.commit()


def open_broadcast(session, task, artists, now=NOW, minutes=30):
    expires = now + timedelta(minutes=minutes)
    task.status = TaskStatus.PENDING.value
    task.offered_to = None
    task.offer_expires_at = None
    task.escalation_level = 3
    task.broadcast_expires_at = expires
    for artist in artists:
        session.add(TaskOffer(
            task_id=task.id, artist_id=artist.id, match_score=40.0,
            escalation_level=3, offered_at=now, expires_at=expires,
        ))
    session.commit()


def actor_for(user) -> Actor:
    return Actor(id=user.id, role=Role(user.role))


def login(client, user):
    with client.session_transaction() as s:
        s["_user_id"] = str(user.id)
        s["_fresh"] = True
    # requests reuse the fixture's app context, where Flask-Login caches the user
    g.pop("_login_user", None)
