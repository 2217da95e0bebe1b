from conftest import API, PASSWORD


def cookie_login(client, email="customer@example.com"):
    response = client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    assert "accessToken" in client.cookies


def test_csrf_token_endpoint_sets_cookie(client):
    response = client.get(f"{API}/auth/csrf-token")
    assert response.status_code == 200
    token = response.json()["data"]["csrfToken"]
    assert len(token) == 64
    assert client.cookies.get("csrfToken") == token


def test_cookie_auth_reads_without_csrf(client, customer):
    cookie_login(client)
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 200


def test_cookie_auth_write_needs_csrf_header(client, customer):
    cookie_login(client)
    response = client.put(f"{API}/auth/profile", json={"name": "Changed"})
    assert response.status_code == 403
    assert response.json()["error"] == "Invalid CSRF token"


def test_cookie_auth_write_with_mismatched_header(client, customer):
    cookie_login(client)
    client.get(f"{API}/auth/csrf-token")
    response = client.put(f"{API}/auth/profile", json={"name": "Changed"}, headers={"X-CSRF-Token": "f" * 64})
    assert response.status_code == 403


def test_cookie_auth_write_with_matching_header(client, customer):
    cookie_login(client)
    token = client.get(f"{API}/auth/csrf-token").json()["data"]["csrfToken"]
    response = client.put(f"{API}/auth/profile", json={"name": "Changed"}, headers={"X-CSRF-Token": token})
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Changed"


def test_bearer_auth_skips_csrf(client, customer):
    response = client.put(f"{API}/auth/profile", json={"name": "Changed"}, headers=customer["headers"])
    assert response.status_code == 200
