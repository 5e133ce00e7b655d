"""Tests for session resolution and identity lookup."""

import uuid

import httpx
import pytest

from wadi.errors import AuthenticationError, InvalidInputError, ProjectNotFoundError
from wadi.models import ChatSession
from wadi.services.auth import IdentityClient, bearer_token
from wadi.services.sessions import (
    end_active_session,
    get_or_create_active_session,
    get_owned_project,
    parse_uuid,
)


def test_active_session_reused(test_db, project):
    """Test the same active session is returned until it ends."""
    first = get_or_create_active_session(test_db, "alice", project.project_id)
    second = get_or_create_active_session(test_db, "alice", project.project_id)

    assert first.session_id == second.session_id

    end_active_session(test_db, "alice", project.project_id)
    third = get_or_create_active_session(test_db, "alice", project.project_id)

    assert third.session_id != first.session_id
    assert test_db.query(ChatSession).filter(ChatSession.is_active.is_(True)).count() == 1


def test_lost_insert_race_reuses_winner(test_db, project, monkeypatch):
    """Test a conflicting insert falls back to the session that won."""
    winner = ChatSession(user_id="alice", project_id=project.project_id, is_active=True)
    test_db.add(winner)
    test_db.commit()

    import wadi.services.sessions as sessions

    original = sessions._find_active
    calls = []

    def stale_then_real(db, user_id, project_id):
        calls.append(project_id)
        # First lookup misses, as if the winner had not committed yet
        if len(calls) == 1:
            return None
        return original(db, user_id, project_id)

    monkeypatch.setattr(sessions, "_find_active", stale_then_real)

    session = get_or_create_active_session(test_db, "alice", project.project_id)

    assert session.session_id == winner.session_id
    assert test_db.query(ChatSession).count() == 1


def test_owned_project(test_db, project):
    """Test ownership and id parsing."""
    assert get_owned_project(test_db, "alice", str(project.project_id)).project_id == project.project_id

    with pytest.raises(ProjectNotFoundError):
        get_owned_project(test_db, "bob", project.project_id)
    with pytest.raises(ProjectNotFoundError):
        get_owned_project(test_db, "alice", uuid.uuid4())
    with pytest.raises(InvalidInputError):
        parse_uuid("not-a-uuid")


def test_bearer_token():
    """Test bearer header parsing."""
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_identity_client_resolves_user():
    """Test the identity provider's user id is returned."""

    def handler(request):
        assert request.headers["Authorization"] == "Bearer good"
        assert request.headers["apikey"] == "anon"
        return httpx.Response(200, json={"id": "user-1"})

    client = IdentityClient("https://auth.test/auth/v1", "anon", transport=httpx.MockTransport(handler))

    assert client.get_user_id("good") == "user-1"


def test_identity_client_expired_and_invalid():
    """Test expired and invalid tokens are distinguished."""

    def handler(request):
        if request.headers["Authorization"] == "Bearer old":
            return httpx.Response(401, json={"msg": "JWT expired"})
        return httpx.Response(401, json={"msg": "bad jwt"})

    client = IdentityClient("https://auth.test/auth/v1", "anon", transport=httpx.MockTransport(handler))

    with pytest.raises(AuthenticationError, match="Token expired"):
        client.get_user_id("old")
    with pytest.raises(AuthenticationError, match="Invalid token"):
        client.get_user_id("forged")
    with pytest.raises(AuthenticationError, match="Missing or invalid authorization header"):
        client.get_user_id(None)
