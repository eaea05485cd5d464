"""HTTP-level tests for the authentication routers."""

import pyotp

from .conftest import ALICE

REGISTER_BODY = {
    "email": ALICE["email"],
    "password": ALICE["password"],
    "first_name": ALICE["first_name"],
    "last_name": ALICE["last_name"],
}


def _register_and_login(client):
    assert client.post("/api/auth/register", json=REGISTER_BODY).status_code == 201
    response = client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    )
    assert response.status_code == 200
    return response.json()


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_register_returns_safe_user(client):
    response = client.post("/api/auth/register", json=REGISTER_BODY)

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == ALICE["email"]
    assert "password_hash" not in user
    assert "email_verification_token" not in user


def test_register_duplicate_email(client):
    client.post("/api/auth/register", json=REGISTER_BODY)

    response = client.post("/api/auth/register", json=REGISTER_BODY)

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "code": "duplicate_email",
        "message": "An account with this email already exists.",
    }


def test_register_invalid_body(client):
    response = client.post("/api/auth/register", json=dict(REGISTER_BODY, email="nope"))

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_error"
    assert "email" in body["fields"]


def test_login_sets_refresh_cookie(client):
    client.post("/api/auth/register", json=REGISTER_BODY)

    response = client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    )

    body = response.json()
    assert body["access_token"]
    assert body["pending_2fa"] is False
    assert response.cookies.get("refreshToken") == body["refresh_token"]
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie


def test_login_wrong_password(client):
    client.post("/api/auth/register", json=REGISTER_BODY)

    response = client.post("/api/auth/login", json={"email": ALICE["email"], "password": "WrongPass1"})

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_profile_requires_bearer_token(client):
    assert client.get("/api/auth/profile").status_code == 401
    assert client.get("/api/auth/me", headers=_auth("garbage")).status_code == 401


def test_profile_and_update(client):
    body = _register_and_login(client)
    headers = _auth(body["access_token"])

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["stats"]["login_count"] == 1

    updated = client.put("/api/auth/profile", headers=headers, json={"phone": "+33600000000"})
    assert updated.status_code == 200
    assert updated.json()["user"]["phone"] == "+33600000000"

    check = client.get("/api/auth/check", headers=headers)
    assert check.json()["message"] == "Authenticated"


def test_refresh_token_from_body(client):
    body = _register_and_login(client)

    response = client.post("/api/auth/refresh-token", json={"refresh_token": body["refresh_token"]})

    assert response.status_code == 200
    assert response.json()["access_token"]


def test_refresh_rejects_access_token(client):
    body = _register_and_login(client)
    client.cookies.clear()

    response = client.post("/api/auth/refresh-token", json={"refresh_token": body["access_token"]})

    assert response.status_code == 401
    assert response.json()["code"] == "token_invalid"


def test_verify_email_flow(client, email_sender):
    client.post("/api/auth/register", json=REGISTER_BODY)
    _, token = email_sender.verification[0]

    assert client.get("/api/auth/verify-email", params={"token": token}).status_code == 200
    again = client.get("/api/auth/verify-email", params={"token": token})
    assert again.status_code == 400
    assert again.json()["code"] == "token_invalid"


def test_password_reset_flow(client, email_sender):
    client.post("/api/auth/register", json=REGISTER_BODY)

    unknown = client.post("/api/auth/request-password-reset", json={"email": "nobody@example.com"})
    known = client.post("/api/auth/request-password-reset", json={"email": ALICE["email"]})
    assert unknown.json() == known.json()

    _, token = email_sender.password_reset[0]
    reset = client.post("/api/auth/reset-password", json={"token": token, "new_password": "NewSecret456"})
    assert reset.status_code == 200
    reused = client.post("/api/auth/reset-password", json={"token": token, "new_password": "Other789x"})
    assert reused.status_code == 400

    login = client.post("/api/auth/login", json={"email": ALICE["email"], "password": "NewSecret456"})
    assert login.status_code == 200


def test_unknown_link_tokens_are_bad_requests(client):
    verify = client.get("/api/auth/verify-email", params={"token": "0" * 64})
    reset = client.post("/api/auth/reset-password", json={"token": "0" * 64, "new_password": "NewSecret456"})

    for response in (verify, reset):
        assert response.status_code == 400
        assert response.json()["code"] == "token_invalid"
        assert response.json()["success"] is False


def test_change_password(client):
    body = _register_and_login(client)

    response = client.post(
        "/api/auth/change-password",
        headers=_auth(body["access_token"]),
        json={"current_password": ALICE["password"], "new_password": "NewSecret456"},
    )

    assert response.status_code == 200


def test_two_factor_login_flow(client):
    body = _register_and_login(client)
    headers = _auth(body["access_token"])

    setup = client.post("/api/auth/2fa/setup", headers=headers).json()
    assert len(setup["backup_codes"]) == 10
    totp = pyotp.TOTP(setup["secret"])
    enabled = client.post("/api/auth/2fa/enable", headers=headers, json={"code": totp.now()})
    assert enabled.status_code == 200

    status = client.get("/api/auth/2fa/status", headers=headers).json()
    assert status["two_factor_enabled"] is True
    assert status["backup_codes_remaining"] == 10

    pending = client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    ).json()
    assert pending["pending_2fa"] is True
    assert pending["access_token"] is None

    bad = client.post(
        "/api/auth/2fa/login", json={"challenge_token": pending["challenge_token"], "code": "000000"}
    )
    assert bad.status_code == 401
    assert bad.json()["code"] == "two_factor_invalid_code"

    done = client.post(
        "/api/auth/2fa/login",
        json={"challenge_token": pending["challenge_token"], "code": setup["backup_codes"][0]},
    )
    assert done.status_code == 200
    assert done.json()["access_token"]


def test_logout_clears_cookie(client):
    body = _register_and_login(client)

    response = client.post("/api/auth/logout", headers=_auth(body["access_token"]))

    assert response.status_code == 200
    assert "refreshToken" in response.headers.get("set-cookie", "")
