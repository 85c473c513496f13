import json

import httpx

from portal.app import middleware
from portal.app.middleware import PendingReviewCache


def test_protected_page_without_session_redirects_to_login(client):
    resp = client.get("/customer/dashboard")

    assert resp.status_code == 303
    assert resp.headers["location"] == "/login?next=/customer/dashboard"


def test_expired_token_clears_cookie_and_redirects(client, backend):
    backend.add("GET", "/api/auth/me", {"message": "Token expired"}, status_code=401)
    client.cookies.set("auth_token", "stale")

    resp = client.get("/admin/dashboard")

    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"
    assert "auth_token=" in resp.headers["set-cookie"]
    assert "max-age=0" in resp.headers["set-cookie"].lower()


def test_wrong_role_redirects_to_unauthorized(client, login_as):
    login_as("mechanic")

    resp = client.get("/admin/users")

    assert resp.status_code == 303
    assert resp.headers["location"] == "/unauthorized"


def test_customer_cannot_open_finance(client, login_as):
    login_as("customer")

    resp = client.get("/admin/finances")

    assert resp.headers["location"] == "/unauthorized"


def test_feed_without_session_is_json_401(client):
    resp = client.get("/notifications/feed")

    assert resp.status_code == 401
    assert resp.json() == {"message": "Authentication required"}


def test_feed_with_expired_token_is_json_401(client, backend):
    backend.add("GET", "/api/notifications", {"message": "Token expired"}, status_code=401)
    client.cookies.set("auth_token", "stale")

    resp = client.get("/notifications/feed")

    assert resp.status_code == 401
    assert resp.json()["message"] == "Token expired"
    assert "max-age=0" in resp.headers["set-cookie"].lower()


def test_bearer_header_is_accepted(client, backend):
    backend.add("GET", "/api/notifications", [{"notificationId": 1, "status": "unread"}])

    resp = client.get("/notifications/feed", headers={"Authorization": "Bearer mobile-token"})

    assert resp.status_code == 200
    sent = backend.calls("GET", "/api/notifications")[0]
    assert sent.headers["authorization"] == "Bearer mobile-token"


def test_cookie_wins_over_bearer_header(client, backend):
    backend.add("GET", "/api/notifications", [])
    client.cookies.set("auth_token", "cookie-token")

    client.get("/notifications/feed", headers={"Authorization": "Bearer header-token"})

    sent = backend.calls("GET", "/api/notifications")[0]
    assert sent.headers["authorization"] == "Bearer cookie-token"


def test_backend_error_renders_error_page(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/Orders/404", {"message": "Order not found"}, status_code=404)

    resp = client.get("/customer/orders/404")

    assert resp.status_code == 404
    assert "Order not found" in resp.text


def test_backend_down_on_json_route(client, backend):
    backend.add("GET", "/api/notifications", httpx.ConnectError("refused"))
    client.cookies.set("auth_token", "tok")

    resp = client.get("/notifications/feed")

    assert resp.status_code == 502
    assert resp.json() == {"message": "Backend is unavailable"}


# --------------------------------------------------------------------
# Pending review guard
# --------------------------------------------------------------------


def _pending(backend, count):
    orders = [{"orderId": i, "mechanic": {"mechanicId": 4, "name": "Ali"}} for i in range(1, count + 1)]
    backend.add("GET", "/api/Reviews/PendingReviews", {"pendingReviewCount": count, "orders": orders})


def test_guard_redirects_customer_with_pending_reviews(client, backend, login_as):
    login_as("customer")
    _pending(backend, 2)

    resp = client.get("/customer/orders")

    assert resp.status_code == 302
    assert resp.headers["location"] == "/customer/reviews?forced=true"


def test_guard_lets_reviews_page_through(client, backend, login_as):
    login_as("customer")
    _pending(backend, 1)

    resp = client.get("/customer/reviews?forced=true")

    assert resp.status_code == 200
    assert "Please review your completed orders" in resp.text
    assert "Order #1" in resp.text
    assert "Mechanic: Ali" in resp.text


def test_guard_ignores_pages_outside_customer(client, backend):
    _pending(backend, 3)
    client.cookies.set("auth_token", "tok")

    resp = client.get("/login")

    assert resp.status_code == 200
    assert backend.calls("GET", "/api/Reviews/PendingReviews") == []


def test_guard_passes_when_backend_fails(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/Reviews/PendingReviews", {"message": "boom"}, status_code=500)
    backend.add("GET", "/api/orders/user", [])

    resp = client.get("/customer/orders")

    assert resp.status_code == 200


def test_guard_caches_result_per_token(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/orders/user", [])

    client.get("/customer/orders")
    client.get("/customer/orders")

    assert len(backend.calls("GET", "/api/Reviews/PendingReviews")) == 1


def test_review_submit_invalidates_guard_cache(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/orders/user", [])
    backend.add("POST", "/api/Reviews/SubmitOrderReview", {"message": "ok"})

    client.get("/customer/orders")
    resp = client.post(
        "/customer/reviews/5",
        data={"mechanic_rating": "5", "mechanic_comments": "Great", "workshop_rating": "4"},
    )
    client.get("/customer/orders")

    assert resp.status_code == 303
    assert resp.headers["location"] == "/customer/reviews"
    assert len(backend.calls("GET", "/api/Reviews/PendingReviews")) == 2

    sent = json.loads(backend.calls("POST", "/api/Reviews/SubmitOrderReview")[0].content)
    assert sent == {
        "orderId": 5,
        "mechanicRating": 5,
        "mechanicComments": "Great",
        "workshopRating": 4,
        "workshopComments": None,
    }


def test_review_rating_out_of_range(client, backend, login_as):
    login_as("customer")

    resp = client.post("/customer/reviews/5", data={"mechanic_rating": "9"})

    assert resp.status_code == 400
    assert "from 1 to 5" in resp.text
    assert backend.calls("POST", "/api/Reviews/SubmitOrderReview") == []


def test_review_cache_drops_expired_tokens(monkeypatch):
    now = [100.0]
    monkeypatch.setattr(middleware.time, "monotonic", lambda: now[0])
    cache = PendingReviewCache(ttl_seconds=60)

    for i in range(1000):
        cache.set(f"old-{i}", 0)
    now[0] += 61
    cache.set("fresh", 2)

    assert len(cache) == 1
    assert cache.get("fresh") == 2
    assert cache.get("old-0") is None


def test_review_cache_keeps_live_tokens(monkeypatch):
    now = [100.0]
    monkeypatch.setattr(middleware.time, "monotonic", lambda: now[0])
    cache = PendingReviewCache(ttl_seconds=60)

    cache.set("a", 1)
    now[0] += 30
    cache.set("b", 0)

    assert len(cache) == 2
    assert cache.get("a") == 1
