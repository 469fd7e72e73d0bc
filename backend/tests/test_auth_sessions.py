import os
import sys
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ACCESS_TOKEN_SECRET", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "fedcba9876543210fedcba9876543210fedcba9876543210fedcba9876543210")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from vidtube.api import deps
from vidtube.api.users import router as users_router
from vidtube.database import Base
from vidtube.errors import register_error_handlers
from vidtube.models.user import User
from vidtube.services.passwords import get_password_hash, verify_password

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _cookie_headers(response, cookie_name: str) -> list[str]:
    return [
        header
        for header in response.headers.get_list("set-cookie")
        if header.split("=", 1)[0] == cookie_name
    ]


def _cookie_value(response, cookie_name: str) -> str:
    headers = _cookie_headers(response, cookie_name)
    assert headers, f"{cookie_name} cookie not set"
    token_part = headers[0].split(";", 1)[0]
    _, value = token_part.split("=", 1)
    return value


def _build_test_client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    register_error_handlers(app)
    app.include_router(users_router, prefix="/api/v1")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    return TestClient(app), TestingSessionLocal


def _seed_user(session_local, username: str, email: str, password: str) -> str:
    db = session_local()
    try:
        user = User(
            username=username,
            email=email,
            fullname=username.title(),
            password_hash=get_password_hash(password),
        )
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def _stored_user(session_local, user_id: str) -> User:
    db = session_local()
    try:
        user = db.query(User).filter(User.id == user_id).one()
        db.expunge(user)
        return user
    finally:
        db.close()


def _login(client: TestClient, username: str, password: str):
    return client.post("/api/v1/users/login", json={"username": username, "password": password})


def test_login_sets_cookies_and_hides_credentials():
    client, session_local = _build_test_client()
    user_id = _seed_user(session_local, "alice", "alice@example.com", "correct")

    response = _login(client, "alice", "correct")
    assert response.status_code == 200
    body = response.json()

    assert body["status"] == 200
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["username"] == "alice"
    assert "password_hash" not in user
    assert "refresh_token" not in user

    for cookie_name in (ACCESS_COOKIE, REFRESH_COOKIE):
        header = _cookie_headers(response, cookie_name)[0]
        assert "HttpOnly" in header
        assert "Secure" in header

    refresh_token = _cookie_value(response, REFRESH_COOKIE)
    assert body["data"]["refresh_token"] == refresh_token
    assert _stored_user(session_local, user_id).refresh_token == refresh_token


def test_login_accepts_email_as_login_key():
    client, session_local = _build_test_client()
    _seed_user(session_local, "bob", "bob@example.com", "hunter22")

    response = client.post(
        "/api/v1/users/login",
        json={"email": "bob@example.com", "password": "hunter22"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["username"] == "bob"


def test_login_failures_are_classified():
    client, session_local = _build_test_client()
    _seed_user(session_local, "alice", "alice@example.com", "correct")

    wrong_password = _login(client, "alice", "incorrect")
    assert wrong_password.status_code == 401
    assert wrong_password.json()["error"] == "UNAUTHORIZED"
    assert wrong_password.json()["status"] == 401

    unknown = _login(client, "mallory", "whatever")
    assert unknown.status_code == 404

    blank = _login(client, "   ", "correct")
    assert blank.status_code == 400

    missing_password = client.post("/api/v1/users/login", json={"username": "alice"})
    assert missing_password.status_code == 400
    assert missing_password.json()["error"] == "BAD_REQUEST"


def test_protected_route_requires_token():
    client, _ = _build_test_client()

    response = client.post("/api/v1/users/get-current-user")
    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized request"
    assert response.headers["www-authenticate"] == "Bearer"

    garbage = client.post(
        "/api/v1/users/get-current-user",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert garbage.status_code == 401
    assert garbage.json()["reason"] == "malformed"


def test_access_token_from_header_or_cookie():
    client, session_local = _build_test_client()
    _seed_user(session_local, "carol", "carol@example.com", "correct")
    access_token = _login(client, "carol", "correct").json()["data"]["access_token"]

    via_header = client.post(
        "/api/v1/users/get-current-user",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    assert via_header.status_code == 200
    assert via_header.json()["data"]["username"] == "carol"

    via_cookie = client.post(
        "/api/v1/users/get-current-user",
        headers={"Cookie": f"{ACCESS_COOKIE}={access_token}"},
    )
    assert via_cookie.status_code == 200

    # Cookie takes precedence over the Authorization header
    bad_cookie = client.post(
        "/api/v1/users/get-current-user",
        headers={
            "Cookie": f"{ACCESS_COOKIE}=garbage",
            "Authorization": f"Bearer {access_token}",
        },
    )
    assert bad_cookie.status_code == 401


def test_refresh_rotates_session_and_rejects_replay():
    client, session_local = _build_test_client()
    _seed_user(session_local, "dave", "dave@example.com", "correct")

    login_response = _login(client, "dave", "correct")
    old_cookie = _cookie_value(login_response, REFRESH_COOKIE)

    refresh_response = client.post(
        "/api/v1/users/refresh-token",
        headers={"Cookie": f"{REFRESH_COOKIE}={old_cookie}"},
    )
    assert refresh_response.status_code == 200
    new_cookie = _cookie_value(refresh_response, REFRESH_COOKIE)
    assert new_cookie != old_cookie
    assert _cookie_value(refresh_response, ACCESS_COOKIE)

    replay_response = client.post(
        "/api/v1/users/refresh-token",
        headers={"Cookie": f"{REFRESH_COOKIE}={old_cookie}"},
    )
    assert replay_response.status_code == 401
    assert replay_response.json()["reason"] == "reused"


def test_refresh_accepts_token_in_body():
    client, session_local = _build_test_client()
    _seed_user(session_local, "erin", "erin@example.com", "correct")
    refresh_token = _login(client, "erin", "correct").json()["data"]["refresh_token"]

    response = client.post("/api/v1/users/refresh-token", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    assert response.json()["data"]["refresh_token"] != refresh_token


def test_refresh_with_garbage_or_forged_token_is_unauthorized():
    client, session_local = _build_test_client()
    user_id = _seed_user(session_local, "frank", "frank@example.com", "correct")

    missing = client.post("/api/v1/users/refresh-token")
    assert missing.status_code == 401

    garbage = client.post("/api/v1/users/refresh-token", json={"refresh_token": "garbage"})
    assert garbage.status_code == 401
    assert garbage.json()["reason"] == "malformed"

    forged = jwt.encode(
        {
            "sub": user_id,
            "type": "refresh",
            "exp": datetime.now(timezone.utc) + timedelta(days=1),
        },
        "a-completely-different-signing-secret-value",
        algorithm="HS256",
    )
    forged_response = client.post("/api/v1/users/refresh-token", json={"refresh_token": forged})
    assert forged_response.status_code == 401
    assert forged_response.json()["reason"] == "invalid_signature"
    assert _cookie_headers(forged_response, REFRESH_COOKIE)


def test_second_login_invalidates_first_session():
    client, session_local = _build_test_client()
    _seed_user(session_local, "grace", "grace@example.com", "correct")

    first_refresh = _cookie_value(_login(client, "grace", "correct"), REFRESH_COOKIE)
    assert _login(client, "grace", "correct").status_code == 200

    response = client.post(
        "/api/v1/users/refresh-token",
        headers={"Cookie": f"{REFRESH_COOKIE}={first_refresh}"},
    )
    assert response.status_code == 401


def test_logout_clears_cookies_and_revokes_refresh_token():
    client, session_local = _build_test_client()
    user_id = _seed_user(session_local, "heidi", "heidi@example.com", "correct")

    login_response = _login(client, "heidi", "correct")
    access_token = login_response.json()["data"]["access_token"]
    refresh_token = _cookie_value(login_response, REFRESH_COOKIE)

    logout_response = client.post(
        "/api/v1/users/logout",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    assert logout_response.status_code == 200
    for cookie_name in (ACCESS_COOKIE, REFRESH_COOKIE):
        assert "Max-Age=0" in _cookie_headers(logout_response, cookie_name)[0]
    assert _stored_user(session_local, user_id).refresh_token is None

    refresh_after_logout = client.post(
        "/api/v1/users/refresh-token",
        headers={"Cookie": f"{REFRESH_COOKIE}={refresh_token}"},
    )
    assert refresh_after_logout.status_code == 401

    logout_again = client.post(
        "/api/v1/users/logout",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    assert logout_again.status_code == 200


def test_change_password():
    client, session_local = _build_test_client()
    user_id = _seed_user(session_local, "ivan", "ivan@example.com", "OldPass123!")
    access_token = _login(client, "ivan", "OldPass123!").json()["data"]["access_token"]
    auth = {"Authorization": f"Bearer {access_token}"}
    old_hash = _stored_user(session_local, user_id).password_hash

    wrong_old = client.post(
        "/api/v1/users/change-password",
        json={"old_password": "nope", "new_password": "NewPass123!"},
        headers=auth,
    )
    assert wrong_old.status_code == 400
    assert _stored_user(session_local, user_id).password_hash == old_hash

    changed = client.post(
        "/api/v1/users/change-password",
        json={"old_password": "OldPass123!", "new_password": "NewPass123!"},
        headers=auth,
    )
    assert changed.status_code == 200
    assert verify_password("NewPass123!", _stored_user(session_local, user_id).password_hash)

    assert _login(client, "ivan", "NewPass123!").status_code == 200
    assert _login(client, "ivan", "OldPass123!").status_code == 401


def test_register_and_duplicate_conflict():
    client, _ = _build_test_client()
    payload = {
        "username": "judy",
        "email": "judy@example.com",
        "fullname": "Judy Hopps",
        "password": "TestPass123!",
    }

    created = client.post("/api/v1/users/register", json=payload)
    assert created.status_code == 201
    assert created.json()["data"]["username"] == "judy"
    assert "password_hash" not in created.json()["data"]

    duplicate = client.post("/api/v1/users/register", json={**payload, "username": "judy2"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "CONFLICT"

    assert _login(client, "judy@example.com", "TestPass123!").status_code == 200


def test_update_account():
    client, session_local = _build_test_client()
    _seed_user(session_local, "kim", "kim@example.com", "correct")
    _seed_user(session_local, "lee", "lee@example.com", "correct")
    access_token = _login(client, "kim", "correct").json()["data"]["access_token"]
    auth = {"Authorization": f"Bearer {access_token}"}

    updated = client.post(
        "/api/v1/users/update-user-details",
        json={"fullname": "Kim Possible"},
        headers=auth,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["fullname"] == "Kim Possible"

    taken = client.post(
        "/api/v1/users/update-user-details",
        json={"email": "lee@example.com"},
        headers=auth,
    )
    assert taken.status_code == 409

    empty = client.post("/api/v1/users/update-user-details", json={}, headers=auth)
    assert empty.status_code == 400


def test_login_skips_blank_username_in_favour_of_email():
    client, session_local = _build_test_client()
    _seed_user(session_local, "amy", "amy@example.com", "correct")

    response = client.post(
        "/api/v1/users/login",
        json={"username": "  ", "email": "amy@example.com", "password": "correct"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["username"] == "amy"


def test_validation_errors_do_not_echo_submitted_passwords():
    client, _ = _build_test_client()

    response = client.post(
        "/api/v1/users/register",
        json={
            "username": "nina",
            "email": "nina@example.com",
            "fullname": "Nina",
            "password": "s3cr3t",
        },
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "BAD_REQUEST"
    assert body["details"][0]["loc"] == ["body", "password"]
    assert "s3cr3t" not in response.text
    assert all("input" not in detail for detail in body["details"])


def test_unencodable_password_is_bad_request():
    client, session_local = _build_test_client()
    _seed_user(session_local, "olga", "olga@example.com", "correct")
    access_token = _login(client, "olga", "correct").json()["data"]["access_token"]

    register = client.post(
        "/api/v1/users/register",
        content='{"username": "pete", "email": "pete@example.com", "fullname": "Pete", '
        '"password": "abcdefgh\\ud800"}',
        headers={"Content-Type": "application/json"},
    )
    assert register.status_code == 400
    assert register.json()["error"] == "BAD_REQUEST"

    change = client.post(
        "/api/v1/users/change-password",
        content='{"old_password": "correct", "new_password": "abcdefgh\\ud800"}',
        headers={"Content-Type": "application/json", "Authorization": f"Bearer {access_token}"},
    )
    assert change.status_code == 400
    assert change.json()["error"] == "BAD_REQUEST"
