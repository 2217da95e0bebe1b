from datetime import datetime

from fastapi import BackgroundTasks
from fastapi.testclient import TestClient

from emails import send_order_status_email, send_contact_email
from populate_db import seed_database, make_admin, main as seed_main, SAMPLE_PRODUCTS
from database import get_user_by_email, get_all_products
from conftest import API


def test_root_and_health(client):
    assert client.get("/").json()["version"] == "v1"
    health = client.get("/health").json()
    assert health["status"] == "OK"
    assert health["environment"] == "test"


def test_unknown_route(client):
    response = client.get(f"{API}/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": f"Route {API}/does-not-exist not found"}


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_unexpected_errors_use_envelope(client, monkeypatch):
    import main

    def explode(key):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(main, "get_setting", explode)

    with TestClient(main.app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get(f"{API}/settings/anything")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "database on fire"}


# ---------------------------------------------------------------------------------------------------
# Mail helpers
# ---------------------------------------------------------------------------------------------------

def test_order_status_email_is_queued():
    tasks = BackgroundTasks()
    assert send_order_status_email("a@example.com", "A", "ORD-1", "shipped", tasks, tracking_number="TRK-1")
    assert len(tasks.tasks) == 1
    message = tasks.tasks[0].args[0]
    assert message.subject == "Your order has been shipped"
    assert "TRK-1" in message.body


def test_order_status_email_skips_pending():
    tasks = BackgroundTasks()
    assert send_order_status_email("a@example.com", "A", "ORD-1", "pending", tasks) is False
    assert tasks.tasks == []


def test_contact_email_goes_to_support():
    tasks = BackgroundTasks()
    send_contact_email({"name": "Guest", "email": "guest@example.com", "message": "Hi"}, tasks)
    message = tasks.tasks[0].args[0]
    assert message.subject == "[Contact] New message from website"
    assert "guest@example.com" in str(message.reply_to[0])


def test_contact_email_escapes_user_input():
    tasks = BackgroundTasks()
    send_contact_email(
        {"name": "<b>Guest</b>", "email": "guest@example.com", "subject": "Hi", "message": "<script>alert(1)</script>"},
        tasks,
    )
    body = tasks.tasks[0].args[0].body
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body
    assert "<script>" not in body
    assert "&lt;b&gt;Guest&lt;/b&gt;" in body


def test_order_status_email_escapes_name():
    tasks = BackgroundTasks()
    send_order_status_email("a@example.com", "<i>A</i>", "ORD-1", "confirmed", tasks)
    assert "Dear &lt;i&gt;A&lt;/i&gt;," in tasks.tasks[0].args[0].body


# ---------------------------------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------------------------------

def test_seed_database_once(client):
    assert seed_database() is True
    admin = get_user_by_email("admin@afghangrocery.com")
    assert admin.role == "admin" and admin.is_verified

    products, total = get_all_products(limit=100)
    assert total == len(SAMPLE_PRODUCTS)

    assert seed_database() is False
    assert get_all_products(limit=100)[1] == len(SAMPLE_PRODUCTS)


def test_seeded_admin_can_log_in(client):
    seed_database()
    response = client.post(f"{API}/auth/login", json={"email": "admin@afghangrocery.com", "password": "admin123"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "admin"


def test_records_get_timestamps(client, customer):
    stored = get_user_by_email("customer@example.com")
    assert isinstance(stored.created_at, datetime)
    assert stored.created_at <= datetime.utcnow()


def test_make_admin(client, customer):
    assert make_admin("customer@example.com") is True
    assert get_user_by_email("customer@example.com").role == "admin"
    assert make_admin("ghost@example.com") is False
    assert seed_main(["--make-admin", "ghost@example.com"]) == 1
