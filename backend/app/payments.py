# Third party payment providers (PayPal, Stripe), crypto hash checks, WhatsApp order links and reCAPTCHA

import json
import logging
import re
import time
from urllib.parse import quote
from typing import Optional, List, Dict, Any

import httpx
import stripe
from fastapi import HTTPException, status

from config import (
    IS_PRODUCTION,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_MODE,
    STRIPE_SECRET_KEY_TEST,
    STRIPE_SECRET_KEY_LIVE,
    STRIPE_WEBHOOK_SECRET,
    WHATSAPP_ADMIN_NUMBER,
    RECAPTCHA_SECRET,
    CRYPTO_TRC20_ADDRESS,
    CRYPTO_ARBITRUM_ADDRESS,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30

# -----------------------------
# PayPal (REST, client credentials)
# -----------------------------

_paypal_token: Optional[str] = None
_paypal_token_exp: float = 0


def paypal_api_base() -> str:
    return "https://api-m.paypal.com" if PAYPAL_MODE == "live" else "https://api-m.sandbox.paypal.com"


def paypal_configured() -> bool:
    return bool(PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET)


async def paypal_get_token(client: httpx.AsyncClient) -> str:
    global _paypal_token, _paypal_token_exp

    now = time.time()
    if _paypal_token and now < (_paypal_token_exp - 60):
        return _paypal_token

    response = await client.post(
        f"{paypal_api_base()}/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET),
        headers={"Accept": "application/json"},
    )
    response.raise_for_status()
    payload = response.json()

    _paypal_token = payload["access_token"]
    _paypal_token_exp = now + int(payload.get("expires_in", 300))
    return _paypal_token


def _require_paypal():
    if not paypal_configured():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="PayPal is not configured")


async def paypal_create_order(amount: float, currency: str = "USD") -> Dict[str, Any]:
    _require_paypal()
    body = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {"currency_code": currency.upper(), "value": f"{amount:.2f}"},
        }],
    }
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            token = await paypal_get_token(client)
            response = await client.post(
                f"{paypal_api_base()}/v2/checkout/orders",
                json=body,
                headers={"Authorization": f"Bearer {token}", "Prefer": "return=representation"},
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        logger.error("PayPal create order failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to create PayPal order")


async def paypal_capture_order(order_id: str) -> Dict[str, Any]:
    _require_paypal()
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            token = await paypal_get_token(client)
            response = await client.post(
                f"{paypal_api_base()}/v2/checkout/orders/{order_id}/capture",
                json={},
                headers={"Authorization": f"Bearer {token}", "Prefer": "return=representation"},
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        logger.error("PayPal capture of %s failed: %s", order_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to capture PayPal order")


def paypal_captured_amount(capture: Dict[str, Any]) -> Optional[float]:
    """Amount of the first capture in a capture-order response, None if it has none."""
    try:
        value = capture["purchase_units"][0]["payments"]["captures"][0]["amount"]["value"]
    except (KeyError, IndexError, TypeError):
        return None
    return float(value)


# -----------------------------
# Stripe
# -----------------------------

# Test key everywhere except production
STRIPE_SECRET_KEY = STRIPE_SECRET_KEY_LIVE if IS_PRODUCTION else STRIPE_SECRET_KEY_TEST

SUPPORTED_CURRENCIES = {
    "usd": "US Dollar",
    "eur": "Euro",
    "gbp": "British Pound",
    "jpy": "Japanese Yen",
    "cad": "Canadian Dollar",
    "aud": "Australian Dollar",
    "chf": "Swiss Franc",
    "cny": "Chinese Yuan",
    "inr": "Indian Rupee",
    "nzd": "New Zealand Dollar",
    "sgd": "Singapore Dollar",
    "hkd": "Hong Kong Dollar",
    "nok": "Norwegian Krone",
    "sek": "Swedish Krona",
    "dkk": "Danish Krone",
    "pln": "Polish Zloty",
    "czk": "Czech Koruna",
    "huf": "Hungarian Forint",
    "ron": "Romanian Leu",
    "bgn": "Bulgarian Lev",
    "try": "Turkish Lira",
    "brl": "Brazilian Real",
    "mxn": "Mexican Peso",
    "ars": "Argentine Peso",
    "clp": "Chilean Peso",
    "cop": "Colombian Peso",
    "zar": "South African Rand",
    "egp": "Egyptian Pound",
    "idr": "Indonesian Rupiah",
    "thb": "Thai Baht",
    "myr": "Malaysian Ringgit",
    "php": "Philippine Peso",
    "pkr": "Pakistani Rupee",
    "bdt": "Bangladesh Taka",
    "vnd": "Vietnamese Dong",
    "aed": "UAE Dirham",
    "sar": "Saudi Riyal",
    "qar": "Qatari Riyal",
    "kwd": "Kuwaiti Dinar",
    "afn": "Afghan Afghani",
}

# Amounts are in the smallest currency unit (cents), 50 is Stripe's floor
MINIMUM_AMOUNT = 50

# Supported currencies Stripe charges in whole units
ZERO_DECIMAL_CURRENCIES = {"jpy", "clp", "vnd"}


def is_valid_currency(currency: str) -> bool:
    return currency.lower() in SUPPORTED_CURRENCIES


def to_minor_units(amount: float, currency: str) -> int:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))


def _stripe():
    if not STRIPE_SECRET_KEY:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Stripe is not configured")
    stripe.api_key = STRIPE_SECRET_KEY
    return stripe


def _stripe_failed(action: str, exc: Exception):
    logger.error("Stripe %s failed: %s", action, exc)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Stripe {action} failed")


def create_payment_intent(amount: int, currency: str, metadata: Dict[str, str], description: Optional[str] = None):
    client = _stripe()
    try:
        return client.PaymentIntent.create(
            amount=amount,
            currency=currency.lower(),
            description=description,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as exc:
        _stripe_failed("create intent", exc)


def retrieve_payment_intent(payment_intent_id: str):
    client = _stripe()
    try:
        return client.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as exc:
        _stripe_failed("retrieve intent", exc)


def create_checkout_link(items: List[Dict[str, Any]], currency: str, success_url: str, cancel_url: str, metadata: Dict[str, str]):
    """Hosted Stripe checkout page for the given lines. Amounts come in already converted to the smallest unit."""
    client = _stripe()
    line_items = []
    for item in items:
        product_data = {"name": item["name"]}
        if item.get("image"):
            product_data["images"] = [item["image"]]
        line_items.append({
            "price_data": {
                "currency": currency.lower(),
                "product_data": product_data,
                "unit_amount": int(round(item["amount"])),
            },
            "quantity": item["quantity"],
        })
    try:
        return client.checkout.Session.create(
            mode="payment",
            line_items=line_items,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        _stripe_failed("payment link", exc)


def parse_webhook_event(payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    if STRIPE_WEBHOOK_SECRET:
        try:
            return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature")

    if IS_PRODUCTION:
        logger.error("Stripe webhook rejected, STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Stripe webhook secret is not configured")

    # No secret configured (local development): trust the payload as is
    logger.warning("Stripe webhook received without signature verification")
    try:
        return json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")


# -----------------------------
# Crypto (TRC20 / Arbitrum)
# -----------------------------

TX_HASH_PATTERNS = {
    "TRC20": re.compile(r"^[0-9a-fA-F]{64}$"),
    "ARBITRUM": re.compile(r"^0x[0-9a-fA-F]{64}$"),
}


def crypto_wallets() -> Dict[str, str]:
    return {"TRC20": CRYPTO_TRC20_ADDRESS, "ARBITRUM": CRYPTO_ARBITRUM_ADDRESS}


def validate_tx_hash(network: str, tx_hash: str) -> str:
    """Checks the hash shape for the network and returns the normalised network name.
    The transfer itself is not looked up on-chain, an admin confirms it."""
    network = network.upper()
    pattern = TX_HASH_PATTERNS.get(network)
    if pattern is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid crypto type")
    if not pattern.match(tx_hash.strip()):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {network} transaction hash")
    return network


# -----------------------------
# WhatsApp
# -----------------------------

def build_whatsapp_link(order_id, total, items: List[Dict[str, Any]], options: Dict[str, Any]) -> Optional[str]:
    if not WHATSAPP_ADMIN_NUMBER:
        return None

    header = options.get("header") or f"New Order #{order_id}"
    total_label = options.get("totalLabel") or "Total"
    currency = options.get("currency") or "$"
    footer = options.get("footer") or "Please confirm availability and payment details."

    text = f"{header}\n{total_label}: {total} {currency}\n\n"
    for item in items:
        line = f"- {item.get('name') or item.get('product_name')} x{item.get('quantity', 1)}"
        if item.get("weight"):
            line += f" ({item['weight']})"
        elif item.get("size"):
            line += f" ({item['size']})"
        text += f"{line}\n"
    text += f"\n{footer}"

    return f"https://wa.me/{WHATSAPP_ADMIN_NUMBER}?text={quote(text, safe='')}"


# -----------------------------
# reCAPTCHA
# -----------------------------

async def verify_recaptcha(token: Optional[str]) -> bool:
    """True when the token checks out, or when no secret is configured."""
    if not RECAPTCHA_SECRET:
        return True
    if not token:
        return False
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                "https://www.google.com/recaptcha/api/siteverify",
                data={"secret": RECAPTCHA_SECRET, "response": token},
            )
            return response.json().get("success") is True
    except httpx.HTTPError as exc:
        logger.error("reCAPTCHA verification failed: %s", exc)
        return False
