from conftest import PASSWORD, auth_headers, make_user

from edupulse import email_service
from edupulse.models import RefreshToken, User, UserRole, UserStatus

API = "/api/v1/auth"

STUDENT_SIGNUP = {
    "email": "New.Student@Example.com",
    "password": PASSWORD,
    "first_name": "New",
    "last_name": "Student",
    "role": "STUDENT",
    "roll_number": "S-100",
    "grade_level": 9,
    "section": "B",
}


def test_register_creates_pending_student_with_profile(client, db):
    r = client.post(f"{API}/register", json=STUDENT_SIGNUP)
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["email"] == "new.student@example.com"
    assert user["status"] == "PENDING_VERIFICATION"
    assert user["student"]["roll_number"] == "S-100"
    assert body["data"]["tokens"]["token_type"] == "bearer"
    assert "refresh_token" in r.cookies

    stored = db.query(User).filter(User.email == "new.student@example.com").one()
    assert stored.password_hash != PASSWORD
    assert stored.gamification is not None


def test_register_student_requires_profile_fields(client):
    payload = {key: value for key, value in STUDENT_SIGNUP.items() if key != "roll_number"}
    r = client.post(f"{API}/register", json=payload)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BAD_REQUEST_ERROR"


def test_register_rejects_weak_password(client):
    r = client.post(f"{API}/register", json={**STUDENT_SIGNUP, "password": "weakpass"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_register_duplicate_email_conflicts(client, student):
    r = client.post(f"{API}/register", json={**STUDENT_SIGNUP, "email": student.email})
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "User with this email already exists"


def test_pending_user_cannot_login_until_verified(client, db):
    client.post(f"{API}/register", json=STUDENT_SIGNUP)
    r = client.post(f"{API}/login", json={"email": STUDENT_SIGNUP["email"], "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Please verify your email before logging in"

    token = db.query(User).filter(User.email == "new.student@example.com").one().email_verify_token
    r = client.post(f"{API}/verify-email", json={"token": token})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "ACTIVE"
    assert r.json()["data"]["email_verified"] is True

    r = client.post(f"{API}/login", json={"email": STUDENT_SIGNUP["email"], "password": PASSWORD})
    assert r.status_code == 200
    assert r.json()["data"]["user"]["last_login_at"] is not None


def test_login_with_wrong_password(client, student):
    r = client.post(f"{API}/login", json={"email": student.email, "password": "Wrong@1234"})
    assert r.status_code == 401
    assert r.json() == {
        "success": False,
        "error": {"message": "Invalid email or password", "code": "AUTHENTICATION_ERROR"},
    }


def test_suspended_user_cannot_login(client, db):
    make_user(db, UserRole.STUDENT, "blocked@example.com", status=UserStatus.SUSPENDED)
    r = client.post(f"{API}/login", json={"email": "blocked@example.com", "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Account is suspended"


def test_refresh_rotates_token(client, db, student):
    login = client.post(f"{API}/login", json={"email": student.email, "password": PASSWORD})
    old_refresh = login.json()["data"]["tokens"]["refresh_token"]

    r = client.post(f"{API}/refresh", json={"refresh_token": old_refresh})
    assert r.status_code == 200
    new_refresh = r.json()["data"]["tokens"]["refresh_token"]
    assert new_refresh != old_refresh
    assert db.query(RefreshToken).filter(RefreshToken.token == old_refresh).first() is None

    r = client.post(f"{API}/refresh", json={"refresh_token": old_refresh})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Invalid refresh token"


def test_refresh_without_token(client):
    client.cookies.clear()
    r = client.post(f"{API}/refresh", json={})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Refresh token is required"


def test_logout_revokes_refresh_token(client, db, student):
    login = client.post(f"{API}/login", json={"email": student.email, "password": PASSWORD})
    refresh = login.json()["data"]["tokens"]["refresh_token"]
    r = client.post(f"{API}/logout", json={"refresh_token": refresh}, headers=auth_headers(student))
    assert r.status_code == 200
    assert db.query(RefreshToken).filter(RefreshToken.token == refresh).first() is None


def test_me_requires_bearer_token(client, student):
    assert client.get(f"{API}/me").status_code == 401
    r = client.get(f"{API}/me", headers={"Authorization": "Basic abc"})
    assert r.json()["error"]["message"] == "Invalid auth scheme"
    r = client.get(f"{API}/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Invalid token"

    r = client.get(f"{API}/me", headers=auth_headers(student))
    assert r.status_code == 200
    assert r.json()["data"]["email"] == student.email
    assert r.json()["data"]["student"]["grade_level"] == 10


def test_password_reset_flow(client, db, student):
    r = client.post(f"{API}/forgot-password", json={"email": student.email})
    assert r.status_code == 200
    token = db.query(User).filter(User.id == student.id).one().reset_token
    assert token

    r = client.post(f"{API}/reset-password", json={"token": token, "password": "Brand@New123"})
    assert r.status_code == 200
    r = client.post(f"{API}/login", json={"email": student.email, "password": "Brand@New123"})
    assert r.status_code == 200

    r = client.post(f"{API}/reset-password", json={"token": token, "password": "Another@123"})
    assert r.status_code == 400


def test_forgot_password_unknown_email_is_silent(client):
    r = client.post(f"{API}/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200


def test_change_password(client, student):
    headers = auth_headers(student)
    r = client.post(
        f"{API}/change-password",
        json={"current_password": "Wrong@1234", "new_password": "Changed@123"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Current password is incorrect"

    r = client.post(
        f"{API}/change-password",
        json={"current_password": PASSWORD, "new_password": PASSWORD},
        headers=headers,
    )
    assert r.status_code == 400

    r = client.post(
        f"{API}/change-password",
        json={"current_password": PASSWORD, "new_password": "Changed@123"},
        headers=headers,
    )
    assert r.status_code == 200
    r = client.post(f"{API}/login", json={"email": student.email, "password": "Changed@123"})
    assert r.status_code == 200


def test_email_greeting_escapes_names(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "send_email", lambda **kwargs: sent.append(kwargs) or False)

    email_service.send_verification_email(to_email="a@example.com", first_name="<b>Eve</b>", token="t1")
    email_service.send_password_reset_email(to_email="a@example.com", first_name="Tom & Jerry", token="t2")

    assert "<p>Hi &lt;b&gt;Eve&lt;/b&gt;,</p>" in sent[0]["html_body"]
    assert "<p>Hi Tom &amp; Jerry,</p>" in sent[1]["html_body"]
