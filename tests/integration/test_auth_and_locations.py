from screening_api.utils.auth import ACCESS_COOKIE, REFRESH_COOKIE

ADMIN_EMAIL = "admin@example.org"
ADMIN_PASSWORD = "AdminPass123"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    return client.post("/api/admin/auth/login", json={"email": email, "password": password})


# ========== AUTH ==========

def test_login_sets_cookies_and_returns_tokens(client, admin_user):
    response = login(client)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == ADMIN_EMAIL
    assert data["user"]["role"] == "admin"
    assert data["accessToken"] and data["refreshToken"]
    assert data["expiresIn"] == 4 * 60 * 60
    assert ACCESS_COOKIE in response.cookies
    assert REFRESH_COOKIE in response.cookies
    assert response.headers["X-RateLimit-Limit"] == "5"


def test_cookie_session_reaches_admin_routes(client, admin_user):
    login(client)

    response = client.get("/api/admin/auth/me")

    assert response.status_code == 200
    assert response.json()["data"]["email"] == ADMIN_EMAIL


def test_login_with_wrong_password(client, admin_user):
    response = login(client, password="not-the-password")

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"


def test_login_for_deactivated_account(client, db, admin_user):
    admin_user.is_active = False
    db.commit()

    response = login(client)

    assert response.status_code == 401
    assert response.json()["error"] == "Account is deactivated"


def test_login_rate_limited_after_five_attempts(client, admin_user):
    for _ in range(5):
        login(client, password="wrong-password")

    response = login(client)

    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_refresh_rotates_tokens(client, admin_user):
    login(client)

    response = client.post("/api/admin/auth/refresh")

    assert response.status_code == 200
    assert response.json()["data"]["accessToken"]
    assert ACCESS_COOKIE in response.cookies


def test_refresh_without_cookie_clears_session(client):
    response = client.post("/api/admin/auth/refresh")

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid refresh token"


def test_access_token_cannot_be_used_as_refresh_token(client, admin_user):
    access_token = login(client).json()["data"]["accessToken"]
    client.cookies.clear()
    client.cookies.set(REFRESH_COOKIE, access_token)

    response = client.post("/api/admin/auth/refresh")

    assert response.status_code == 401


def test_logout_clears_cookies(client, admin_user):
    login(client)

    client.post("/api/admin/auth/logout")

    assert client.get("/api/admin/auth/me").status_code == 401


def test_bearer_token_is_accepted(client, admin_headers):
    response = client.get("/api/admin/auth/me", headers=admin_headers)

    assert response.status_code == 200


def test_garbage_bearer_token_is_rejected(client):
    response = client.get("/api/admin/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

    assert response.status_code == 401


# ========== LOCATIONS ==========

LOCATION = {
    "name": "Grace Chapel",
    "address": "100 Main Street, Springfield",
    "contactPerson": "Pastor Lee",
    "contactEmail": "lee@gracechapel.org",
    "contactPhone": "555-222-3333",
}


def test_create_and_list_locations(client, admin_headers, location_store):
    created = client.post("/api/admin/locations", json=LOCATION, headers=admin_headers)

    assert created.status_code == 201
    location_id = created.json()["data"]["id"]
    listed = client.get("/api/admin/locations", headers=admin_headers).json()["data"]
    assert [item["id"] for item in listed] == [location_id]


def test_create_location_validates_input(client, admin_headers):
    response = client.post("/api/admin/locations", json={**LOCATION, "address": "short"}, headers=admin_headers)

    assert response.status_code == 400
    assert any(error.startswith("address") for error in response.json()["validationErrors"])


def test_update_unknown_location(client, admin_headers):
    response = client.put("/api/admin/locations/missing", json=LOCATION, headers=admin_headers)

    assert response.status_code == 404


def test_delete_unreferenced_location(client, admin_headers, location_store):
    location_store.add(id="loc-9", name="Empty Hall")

    response = client.delete("/api/admin/locations/loc-9", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["action"] == "deleted"
    assert "loc-9" not in location_store.items


def test_delete_referenced_location_requires_archive(client, admin_headers, location_store, submission_store):
    location_store.add(id="loc-1", name="Grace Chapel")
    submission_store.add(id="sub-1", churchId="loc-1", submissionDate="2026-03-01T10:00:00.000Z")

    refused = client.delete("/api/admin/locations/loc-1", headers=admin_headers)
    archived = client.delete("/api/admin/locations/loc-1", params={"action": "archive"}, headers=admin_headers)

    assert refused.status_code == 409
    assert archived.status_code == 200
    assert archived.json()["data"]["action"] == "archived"
    assert location_store.items["loc-1"]["isActive"] is False


def test_delete_unknown_location(client, admin_headers):
    assert client.delete("/api/admin/locations/missing", headers=admin_headers).status_code == 404


def test_location_qr_code(client, admin_headers, location_store):
    location_store.add(id="loc-1", name="Grace Chapel")

    response = client.get("/api/admin/locations/loc-1/qr-code", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(PNG_SIGNATURE)
    assert "Grace-Chapel-qr-code.png" in response.headers["content-disposition"]


def test_generic_qr_code_requires_url(client, admin_headers):
    missing = client.get("/api/admin/qr-code", headers=admin_headers)
    generated = client.get("/api/admin/qr-code", params={"url": "https://example.org/form"}, headers=admin_headers)

    assert missing.status_code == 400
    assert generated.status_code == 200
    assert generated.content.startswith(PNG_SIGNATURE)
