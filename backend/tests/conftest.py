import os
import tempfile

# Must be set before the app modules are imported, config reads them at import time
os.environ["APP_ENV"] = "test"
os.environ["API_VERSION"] = "v1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["COOKIE_SECURE"] = "0"
os.environ["DELIVERY_FEE"] = "200"
os.environ["STRIPE_DEFAULT_CURRENCY"] = "usd"
os.environ["WHATSAPP_ADMIN_NUMBER"] = "4915217735657"
os.environ["MAIL_SUPPRESS_SEND"] = "1"
os.environ["RECAPTCHA_SECRET"] = ""
os.environ["STRIPE_SECRET_KEY_TEST"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["PAYPAL_CLIENT_ID"] = ""
os.environ["PAYPAL_CLIENT_SECRET"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="afghan-grocery-uploads-")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from main import app
from auth import hash_password
from database import engine, create_db_and_tables, drop_db_and_tables, add_user, add_record, add_product
from db_models import Category, OTPCode

API = "/api/v1"
PASSWORD = "secret123"


@pytest.fixture()
def client():
    drop_db_and_tables()
    create_db_and_tables()
    with TestClient(app) as test_client:
        yield test_client


def login(client, email, password=PASSWORD):
    response = client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['accessToken']}"}


def latest_otp(email, purpose="signup"):
    with Session(engine) as session:
        record = session.exec(
            select(OTPCode).where((OTPCode.email == email) & (OTPCode.purpose == purpose))
        ).first()
        return record.code if record else None


@pytest.fixture()
def customer(client):
    user = add_user("customer@example.com", hash_password(PASSWORD), "Test Customer", is_verified=True)
    return {"user": user, "headers": login(client, user.email)}


@pytest.fixture()
def other_customer(client):
    user = add_user("other@example.com", hash_password(PASSWORD), "Other Customer", is_verified=True)
    return {"user": user, "headers": login(client, user.email)}


@pytest.fixture()
def admin(client):
    user = add_user("admin@example.com", hash_password(PASSWORD), "Admin", role="admin", is_verified=True)
    return {"user": user, "headers": login(client, user.email)}


@pytest.fixture()
def category(client):
    return add_record(Category, {"name": "Spices", "icon": "🌶️"})


@pytest.fixture()
def product(category):
    return add_product({
        "name": "Saffron Threads",
        "description": "Authentic Afghan saffron",
        "price": 89.99,
        "stock": 10,
        "category_id": category.id,
        "image": "/images/products/saffron.jpg",
        "unit": "gram",
        "is_featured": True,
    })


@pytest.fixture()
def cheap_product(category):
    return add_product({
        "name": "Cardamom",
        "description": "Green cardamom pods",
        "price": 15.5,
        "stock": 3,
        "category_id": category.id,
    })


ADDRESS = {
    "recipient_name": "Ahmad Karimi",
    "phone": "+49 170 0000000",
    "province": "Hamburg",
    "city": "Hamburg",
    "street": "Steindamm 12",
    "postal_code": "20099",
}
