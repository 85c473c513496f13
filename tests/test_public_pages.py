def test_landing_for_anonymous(client):
    resp = client.get("/")

    assert resp.status_code == 200
    assert "MotoMate" in resp.text


def test_landing_redirects_logged_in_user(client, login_as):
    login_as("finance_officer")

    resp = client.get("/")

    assert resp.status_code == 302
    assert resp.headers["location"] == "/admin/finances"


def test_landing_with_stale_token(client, backend):
    backend.add("GET", "/api/auth/me", {"message": "expired"}, status_code=401)
    client.cookies.set("auth_token", "stale")

    resp = client.get("/")

    assert resp.status_code == 200


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.text == "ok"


def test_unauthorized_page(client):
    resp = client.get("/unauthorized")

    assert resp.status_code == 403
    assert "Access denied" in resp.text
