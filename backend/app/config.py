# App Configuration

# Everything is read from the environment (or a local .env file)
import os
from dotenv import load_dotenv
load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# -----------------------------
# General
# -----------------------------

APP_ENV = os.getenv("APP_ENV", "development")
PORT = int(os.getenv("PORT", 3000))
API_VERSION = os.getenv("API_VERSION", "v1")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

IS_PRODUCTION = APP_ENV == "production"

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.getenv("DATA_DIR", os.path.join(BASE_DIR, "..", "data"))

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(DATA_DIR, 'afghan_grocery.db')}")
DATABASE_ECHO = _flag("DATABASE_ECHO")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
BACKEND_URL = os.getenv("BACKEND_URL", "")
CORS_ORIGIN = os.getenv("CORS_ORIGIN", FRONTEND_URL)

# -----------------------------
# Sessions & Tokens
# -----------------------------

SECRET_KEY = os.getenv("SECRET_KEY", "unsafe-random-string-for-dev")
ALGORITHM = "HS256"

JWT_SECRET = os.getenv("JWT_SECRET", "changeme")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "changemerefresh")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))

COOKIE_SECURE = _flag("COOKIE_SECURE", "1" if IS_PRODUCTION else "0")
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")
COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
CSRF_COOKIE = "csrfToken"
CSRF_HEADER = "X-CSRF-Token"

# OTP (signup verification and password reset)
OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 15
OTP_MAX_ATTEMPTS = 5
OTP_RESEND_COOLDOWN_SECONDS = 60

# -----------------------------
# Google OAuth
# -----------------------------

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

RECAPTCHA_SECRET = os.getenv("RECAPTCHA_SECRET", "")

# -----------------------------
# Mail (SMTP)
# -----------------------------

MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", "noreply@afghangrocery.com")
MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
MAIL_SUPPRESS_SEND = _flag("MAIL_SUPPRESS_SEND")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@afghangrocery.com")

# -----------------------------
# Payments
# -----------------------------

PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")
PAYPAL_MODE = os.getenv("PAYPAL_MODE", "sandbox")

STRIPE_SECRET_KEY_TEST = os.getenv("STRIPE_SECRET_KEY_TEST", "")
STRIPE_SECRET_KEY_LIVE = os.getenv("STRIPE_SECRET_KEY_LIVE", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_DEFAULT_CURRENCY = os.getenv("STRIPE_DEFAULT_CURRENCY", "usd")

CRYPTO_TRC20_ADDRESS = os.getenv("CRYPTO_TRC20_ADDRESS", "TW5gj7ZPJhVGWVE4qpfR9MQvrkryQjArV1")
CRYPTO_ARBITRUM_ADDRESS = os.getenv("CRYPTO_ARBITRUM_ADDRESS", "0x084Ae494Ff43Ef2d5ef8aff8f02c757AaE4CC1Ab")

WHATSAPP_ADMIN_NUMBER = os.getenv("WHATSAPP_ADMIN_NUMBER", "4915217735657")

# Flat delivery fee, same unit as product prices
DELIVERY_FEE = float(os.getenv("DELIVERY_FEE", 200))

# -----------------------------
# Uploads
# -----------------------------

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(DATA_DIR, "uploads"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
