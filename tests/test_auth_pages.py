import json

import httpx
import pytest


@pytest.mark.parametrize(
    "role, home",
    [
        ("super_admin", "/admin/dashboard"),
        ("admin", "/admin/dashboard"),
        ("mechanic", "/admin/mechanic"),
        ("finance_officer", "/admin/finances"),
        ("customer", "/customer/dashboard"),
    ],
)
def test_login_redirects_to_role_home(client, backend, role, home):
    backend.add("POST", "/api/auth/login", {"token": "jwt-abc", "user": {"userId": 1, "role": role}})

    resp = client.post("/login", data={"email": "user@example.com", "password": "secret1"})

    assert resp.status_code == 303
    assert resp.headers["location"] == home
    assert resp.cookies.get("auth_token") == "jwt-abc"
    assert "httponly" in resp.headers["set-cookie"].lower()


def test_login_sends_credentials(client, backend):
    backend.add("POST", "/api/auth/login", {"token": "jwt-abc", "user": {"role": "customer"}})

    client.post("/login", data={"email": " user@example.com ", "password": "secret1"})

    sent = json.loads(backend.calls("POST", "/api/auth/login")[0].content)
    assert sent == {"email": "user@example.com", "password": "secret1"}


def test_login_honours_next(client, backend):
    backend.add("POST", "/api/auth/login", {"token": "jwt-abc", "user": {"role": "customer"}})

    resp = client.post(
        "/login",
        data={"email": "user@example.com", "password": "secret1", "next": "/customer/orders"},
    )

    assert resp.headers["location"] == "/customer/orders"


def test_login_ignores_external_next(client, backend):
    backend.add("POST", "/api/auth/login", {"token": "jwt-abc", "user": {"role": "customer"}})

    resp = client.post(
        "/login",
        data={"email": "user@example.com", "password": "secret1", "next": "//evil.example.com"},
    )

    assert resp.headers["location"] == "/customer/dashboard"


def test_login_wrong_password_shows_backend_message(client, backend):
    backend.add("POST", "/api/auth/login", {"message": "Invalid email or password"}, status_code=401)

    resp = client.post("/login", data={"email": "user@example.com", "password": "wrong"})

    assert resp.status_code == 400
    assert "Invalid email or password" in resp.text
    assert "auth_token" not in resp.cookies


def test_login_backend_unreachable(client, backend):
    backend.add("POST", "/api/auth/login", httpx.ConnectError("refused"))

    resp = client.post("/login", data={"email": "user@example.com", "password": "secret1"})

    assert resp.status_code == 400
    assert "No response from server" in resp.text


def test_login_validates_email_before_backend(client, backend):
    resp = client.post("/login", data={"email": "nope", "password": "secret1"})

    assert resp.status_code == 400
    assert backend.calls("POST", "/api/auth/login") == []


def test_login_page_keeps_next(client):
    resp = client.get("/login?next=/customer/vehicles")

    assert resp.status_code == 200
    assert 'value="/customer/vehicles"' in resp.text


def test_logout_clears_cookie(client):
    client.cookies.set("auth_token", "jwt-abc")

    resp = client.post("/logout")

    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"
    assert "max-age=0" in resp.headers["set-cookie"].lower()


def test_register_password_mismatch(client, backend):
    resp = client.post(
        "/register",
        data={
            "username": "ali",
            "name": "Ali Khan",
            "email": "ali@example.com",
            "password": "secret1",
            "confirm_password": "secret2",
        },
    )

    assert resp.status_code == 400
    assert "Passwords do not match" in resp.text
    assert 'value="ali@example.com"' in resp.text
    assert backend.calls("POST", "/api/auth/register") == []


def test_register_without_token_goes_to_login(client, backend):
    backend.add("POST", "/api/auth/register", {"message": "User registered successfully"})

    resp = client.post(
        "/register",
        data={
            "username": "ali",
            "name": "Ali Khan",
            "email": "ali@example.com",
            "password": "secret1",
            "confirm_password": "secret1",
        },
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"
    sent = json.loads(backend.calls("POST", "/api/auth/register")[0].content)
    assert sent["phone"] is None
    assert sent["confirmPassword"] == "secret1"


def test_forgot_password_sends_email(client, backend):
    backend.add("POST", "/api/auth/reset-password", {"message": "sent"})

    resp = client.post("/forgot-password", data={"email": "ali@example.com"})

    assert resp.status_code == 200
    assert "reset link has been sent" in resp.text


def test_reset_password_confirms_token(client, backend):
    backend.add("POST", "/api/auth/reset-password/confirm", {"message": "ok"})

    resp = client.post(
        "/reset-password",
        data={"token": "reset-tok", "new_password": "secret1", "confirm_password": "secret1"},
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"
    sent = json.loads(backend.calls("POST", "/api/auth/reset-password/confirm")[0].content)
    assert sent == {"token": "reset-tok", "newPassword": "secret1"}


def test_reset_password_without_token(client):
    resp = client.post("/reset-password", data={"new_password": "secret1", "confirm_password": "secret1"})

    assert resp.status_code == 400
    assert "Reset link is invalid" in resp.text
